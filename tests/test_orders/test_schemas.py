"""
Tests for snapshot construction from API records.

Covers which address source wins for customer records versus order records.
"""

from orderdesk.schemas.orders import AddressSnapshot, CustomerSnapshot, OrderRecord


# ============================================================================
# Address Precedence Tests
# ============================================================================


class TestAddressPrecedence:
    """Test nested versus flat address fields."""

    def test_nested_wins_by_default(self):
        address = AddressSnapshot.from_record(
            {"street": "Rua Plana", "address": {"street": "Rua Aninhada", "number": "9"}}
        )

        assert address.street == "Rua Aninhada"
        assert address.number == "9"

    def test_prefer_flat(self):
        address = AddressSnapshot.from_record(
            {"street": "Rua Plana", "address": {"street": "Rua Aninhada", "number": "9"}},
            prefer_flat=True,
        )

        assert address.street == "Rua Plana"
        assert address.number == "9"

    def test_customer_record_uses_canonical_nested_address(self):
        customer = CustomerSnapshot.from_record(
            {
                "id": 7,
                "name": "Maria",
                "street": "Rua Antiga",
                "address": {"street": "Rua das Flores", "number": "120"},
            }
        )

        assert customer.address.street == "Rua das Flores"

    def test_order_record_keeps_saved_flat_address(self):
        record = OrderRecord.from_record(
            {
                "id": 42,
                "street": "Rua do Pedido",
                "customerNumber": "55",
                "address": {"street": "Rua do Cadastro", "city": "Campinas"},
            }
        )

        assert record.address.street == "Rua do Pedido"
        assert record.address.number == "55"
        assert record.address.city == "Campinas"

    def test_order_record_falls_back_to_customer_address(self):
        record = OrderRecord.from_record(
            {
                "id": 42,
                "customer": {"id": 7, "address": {"street": "Rua das Flores"}},
            }
        )

        assert record.address.street == "Rua das Flores"
        assert record.customer_id == 7
