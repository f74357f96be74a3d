"""
Order composition engine for the order management dashboard.

Assembles draft orders from customer, address and product lookups, keeps the
line-item ledger and derived totals, and renders the outbound payloads.
"""
