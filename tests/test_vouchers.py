"""
Tests for journal and receipt vouchers

Each voucher must move the customer balance and append exactly one posting,
or do neither.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from studio_ledger.errors import NotFoundError, ValidationError
from studio_ledger.ledger import EntityKind, PostingType


def balance_of(system, customer):
    return system.balances.get_balance(EntityKind.CUSTOMER, customer.id)


def postings_of(system, customer):
    return system.ledger.query(EntityKind.CUSTOMER, customer.id)


class TestJournalVoucher:

    def test_journal_adds_debt(self, system, customer):
        result = system.voucher_service.post_journal(
            customer.id, "200", date=date(2025, 3, 1), notes="Extra prints",
            reference_number="JV-1"
        )

        posting = result.posting
        assert posting.posting_type == PostingType.JOURNAL
        assert posting.amount == Decimal("200")
        assert posting.date == datetime(2025, 3, 1, tzinfo=timezone.utc)
        assert posting.reference_number == "JV-1"
        assert posting.related_model == "Customer"
        assert balance_of(system, customer) == Decimal("200")

    def test_result_carries_customer_fields(self, system, customer):
        result = system.voucher_service.post_journal(customer.id, 75)
        assert result.entity == {
            "id": customer.id,
            "kind": "customer",
            "full_name": "Layla Haddad",
            "phone_number": "0791234567",
            "balance": Decimal("75")
        }

    def test_posting_is_stored(self, system, customer):
        result = system.voucher_service.post_journal(customer.id, "10.50")
        assert system.ledger.get_posting(result.posting.id) == result.posting


class TestReceiptVoucher:

    def test_receipt_reduces_debt(self, system, customer):
        system.voucher_service.post_journal(customer.id, "200")
        result = system.voucher_service.post_receipt(customer.id, "150", payment_method="cash")

        assert result.posting.amount == Decimal("-150")
        assert result.posting.payment_method == "cash"
        assert balance_of(system, customer) == Decimal("50")

    def test_receipt_can_make_customer_a_creditor(self, system, customer):
        system.voucher_service.post_receipt(customer.id, "40")
        assert balance_of(system, customer) == Decimal("-40")

    def test_journal_then_receipt_of_same_amount_cancels_out(self, system, customer):
        system.voucher_service.post_journal(customer.id, "123.45")
        system.voucher_service.post_receipt(customer.id, "123.45")

        assert balance_of(system, customer) == Decimal("0")
        assert len(postings_of(system, customer)) == 2


class TestVoucherValidation:

    @pytest.mark.parametrize("amount", ["0", 0, "-5", -0.01])
    def test_amount_must_be_positive(self, system, customer, amount):
        with pytest.raises(ValidationError, match="Amount must be positive"):
            system.voucher_service.post_journal(customer.id, amount)
        assert postings_of(system, customer) == []
        assert balance_of(system, customer) == Decimal("0")

    @pytest.mark.parametrize("amount", [None, "", "abc", "NaN"])
    def test_amount_must_be_numeric(self, system, customer, amount):
        with pytest.raises(ValidationError):
            system.voucher_service.post_receipt(customer.id, amount)
        assert postings_of(system, customer) == []

    def test_customer_id_required(self, system):
        with pytest.raises(ValidationError, match="Customer ID is required"):
            system.voucher_service.post_journal("", "10")

    def test_unknown_customer(self, system):
        with pytest.raises(NotFoundError):
            system.voucher_service.post_receipt("nobody", "10")
        assert system.ledger.list_postings().total == 0

    def test_supplier_id_is_not_a_customer(self, system, supplier):
        with pytest.raises(NotFoundError):
            system.voucher_service.post_journal(supplier.id, "10")
        assert system.balances.get_balance(EntityKind.SUPPLIER, supplier.id) == Decimal("0")


class TestVoucherAtomicity:

    def test_failed_append_restores_balance(self, system, customer, monkeypatch):
        def broken_append(posting):
            raise OSError("ledger table unavailable")

        monkeypatch.setattr(system.ledger, "append", broken_append)

        with pytest.raises(OSError, match="ledger table unavailable"):
            system.voucher_service.post_journal(customer.id, "300")

        assert balance_of(system, customer) == Decimal("0")
        assert postings_of(system, customer) == []

    def test_balance_equals_posting_total(self, system, customer):
        for amount in ("100", "25.25", "60"):
            system.voucher_service.post_journal(customer.id, amount)
        system.voucher_service.post_receipt(customer.id, "80")

        total = system.ledger.total_for_entity(EntityKind.CUSTOMER, customer.id)
        assert total == balance_of(system, customer) == Decimal("105.25")


class TestVoucherOnSQLite:
    """Same guarantees on a transactional backend"""

    @pytest.fixture
    def sqlite_system(self, tmp_path):
        from studio_ledger.api.dependencies import StudioSystem
        from studio_ledger.config import StudioConfig
        from studio_ledger.storage import SQLiteStorage

        system = StudioSystem(storage=SQLiteStorage(tmp_path / "studio.db"),
                              config=StudioConfig(database_url="memory://"))
        yield system
        system.close()

    def test_failed_append_rolls_back_everything(self, sqlite_system, monkeypatch):
        customer = sqlite_system.customer_manager.create_customer("Layla Haddad", "0791234567")

        def broken_append(posting):
            raise OSError("ledger table unavailable")

        monkeypatch.setattr(sqlite_system.ledger, "append", broken_append)
        with pytest.raises(OSError):
            sqlite_system.voucher_service.post_journal(customer.id, "300")
        monkeypatch.undo()

        assert balance_of(sqlite_system, customer) == Decimal("0")

        sqlite_system.voucher_service.post_journal(customer.id, "25")
        assert balance_of(sqlite_system, customer) == Decimal("25")
        assert sqlite_system.audit_trail.verify_integrity()["valid"] is True
