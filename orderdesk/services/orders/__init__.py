"""
Order composition service package initialization.

This module makes the order service directory a Python package, allowing
ledger, pricing, validation and composer modules to be imported separately.
"""
