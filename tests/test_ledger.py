"""
Test suite for the ledger store

Postings are append-only, ordered by insertion for queries and by business
date (newest first) for paged lists.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from studio_ledger.storage import InMemoryStorage
from studio_ledger.audit import AuditTrail, AuditEventType
from studio_ledger.errors import ValidationError
from studio_ledger.ledger import (
    EntityKind, PostingType, LedgerPosting, LedgerStore
)


def day(n: int) -> datetime:
    return datetime(2025, 3, n, tzinfo=timezone.utc)


@pytest.fixture
def store():
    storage = InMemoryStorage()
    return LedgerStore(storage, AuditTrail(storage), max_page_size=100)


def add(store, amount, date=None, kind=EntityKind.CUSTOMER, entity_id="C1",
        posting_type=PostingType.JOURNAL):
    posting = store.new_posting(kind, entity_id, posting_type, Decimal(amount), date=date)
    store.append(posting)
    return posting


class TestEnums:

    def test_entity_kind_table_names(self):
        assert EntityKind.CUSTOMER.table_name == "customers"
        assert EntityKind.SUPPLIER.table_name == "suppliers"

    def test_entity_kind_parse(self):
        assert EntityKind.parse("supplier") == EntityKind.SUPPLIER
        assert EntityKind.parse(EntityKind.CUSTOMER) == EntityKind.CUSTOMER

    @pytest.mark.parametrize("value", ["vendor", "", None, "Customer"])
    def test_entity_kind_parse_rejects_unknown(self, value):
        with pytest.raises(ValidationError):
            EntityKind.parse(value)

    def test_posting_type_parse(self):
        assert PostingType.parse("receipt") == PostingType.RECEIPT
        with pytest.raises(ValidationError, match="Unknown posting type"):
            PostingType.parse("refund")


class TestLedgerPosting:

    def test_requires_entity(self):
        now = datetime.now(timezone.utc)
        with pytest.raises(ValidationError):
            LedgerPosting(
                id="P1", created_at=now, updated_at=now,
                entity_kind=EntityKind.CUSTOMER, entity_id="",
                posting_type=PostingType.JOURNAL, date=now, amount=Decimal("1")
            )

    def test_round_trip_through_storage_format(self, store):
        posting = add(store, "12.34", date=day(2))
        loaded = store.get_posting(posting.id)
        assert loaded == posting
        assert loaded.amount == Decimal("12.34")
        assert loaded.date == day(2)

    def test_date_defaults_to_now(self, store):
        posting = store.new_posting(EntityKind.CUSTOMER, "C1", PostingType.JOURNAL, Decimal("1"))
        assert posting.date == posting.created_at


class TestAppend:

    def test_append_returns_id_and_audits(self, store):
        posting = store.new_posting(EntityKind.CUSTOMER, "C1", PostingType.JOURNAL, Decimal("5"))
        assert store.append(posting) == posting.id

        events = store.audit_trail.get_events_for_entity("posting", posting.id)
        assert len(events) == 1
        assert events[0].event_type == AuditEventType.POSTING_CREATED
        assert events[0].metadata["amount"] == "5"

    def test_append_is_not_an_update(self, store):
        posting = add(store, "5")
        with pytest.raises(ValidationError, match="already exists"):
            store.append(posting)

    def test_append_does_not_touch_balances(self, store):
        store.storage.save("customers", "C1", {"id": "C1", "balance": "0"})
        add(store, "100")
        assert store.storage.load("customers", "C1")["balance"] == "0"


class TestQuery:

    def test_query_is_insertion_ordered(self, store):
        first = add(store, "1", date=day(5))
        second = add(store, "2", date=day(1))
        third = add(store, "3", date=day(3))

        result = store.query(EntityKind.CUSTOMER, "C1")
        assert [p.id for p in result] == [first.id, second.id, third.id]

    def test_query_filters_entity_kind_and_type(self, store):
        add(store, "1")
        add(store, "-1", posting_type=PostingType.RECEIPT)
        add(store, "9", entity_id="C2")
        add(store, "4", kind=EntityKind.SUPPLIER)

        assert len(store.query(EntityKind.CUSTOMER, "C1")) == 2
        receipts = store.query(EntityKind.CUSTOMER, "C1", posting_type=PostingType.RECEIPT)
        assert [p.amount for p in receipts] == [Decimal("-1")]
        assert len(store.query(EntityKind.SUPPLIER, "C1")) == 1

    def test_query_date_range_is_inclusive(self, store):
        add(store, "1", date=day(1))
        add(store, "2", date=day(2))
        add(store, "3", date=day(3))

        result = store.query(EntityKind.CUSTOMER, "C1", start=day(2), end=day(3))
        assert [p.amount for p in result] == [Decimal("2"), Decimal("3")]

    def test_total_for_entity(self, store):
        add(store, "200")
        add(store, "-150", posting_type=PostingType.RECEIPT)
        add(store, "1000", entity_id="other")
        assert store.total_for_entity(EntityKind.CUSTOMER, "C1") == Decimal("50")
        assert store.total_for_entity(EntityKind.CUSTOMER, "nobody") == Decimal("0")


class TestListPostings:

    def test_newest_date_first_then_newest_insertion(self, store):
        a = add(store, "1", date=day(1))
        b = add(store, "2", date=day(2))
        c = add(store, "3", date=day(2))

        page = store.list_postings()
        assert [p.id for p in page.postings] == [c.id, b.id, a.id]

    def test_pagination(self, store):
        for i in range(1, 6):
            add(store, str(i), date=day(i))

        page = store.list_postings(page=2, limit=2)
        assert page.total == 5
        assert page.pages == 3
        assert [p.amount for p in page.postings] == [Decimal("3"), Decimal("2")]

    def test_limit_and_page_are_clamped(self, store):
        add(store, "1")
        assert store.list_postings(limit=1000).limit == 100
        assert store.list_postings(limit=-5).limit == 1
        assert store.list_postings(page=0).page == 1

    def test_filters(self, store):
        add(store, "1")
        add(store, "-1", posting_type=PostingType.RECEIPT)
        add(store, "7", kind=EntityKind.SUPPLIER, entity_id="S1")

        assert store.list_postings(entity_kind=EntityKind.SUPPLIER).total == 1
        assert store.list_postings(entity_id="C1").total == 2
        assert store.list_postings(posting_type=PostingType.RECEIPT).total == 1
