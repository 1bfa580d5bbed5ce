"""
Tests for bookings and their effect on the customer balance
"""

import threading
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from studio_ledger.api.dependencies import StudioSystem
from studio_ledger.audit import AuditEventType
from studio_ledger.bookings import BookingChannel, BookingStatus
from studio_ledger.config import StudioConfig
from studio_ledger.errors import NotFoundError, ValidationError
from studio_ledger.ledger import EntityKind
from studio_ledger.storage import SQLiteStorage


def balance_of(system, customer):
    return system.balances.get_balance(EntityKind.CUSTOMER, customer.id)


class TestCreateBooking:

    def test_create_charges_customer(self, system, customer):
        booking = system.booking_manager.create_booking(
            customer.id, "500", shooting_date=date(2025, 4, 10), shooting_time="10:00"
        )
        assert booking.total_selling_price == Decimal("500")
        assert booking.shooting_date == datetime(2025, 4, 10, tzinfo=timezone.utc)
        assert booking.status == BookingStatus.PENDING
        assert booking.source == BookingChannel.ADMIN
        assert balance_of(system, customer) == Decimal("500")

        loaded = system.booking_manager.get_booking(booking.id)
        assert loaded == booking

    def test_cancelled_booking_does_not_charge(self, system, customer):
        system.booking_manager.create_booking(customer.id, "300", status=BookingStatus.CANCELLED)
        assert balance_of(system, customer) == Decimal("0")

    def test_negative_price_rejected(self, system, customer):
        with pytest.raises(ValidationError, match="cannot be negative"):
            system.booking_manager.create_booking(customer.id, "-1")
        assert system.booking_manager.list_bookings()[1] == 0

    def test_non_numeric_price_rejected(self, system, customer):
        with pytest.raises(ValidationError):
            system.booking_manager.create_booking(customer.id, "five hundred")

    def test_unknown_customer(self, system):
        with pytest.raises(NotFoundError):
            system.booking_manager.create_booking("nobody", "100")

    def test_missing_customer_id(self, system):
        with pytest.raises(ValidationError):
            system.booking_manager.create_booking("", "100")

    def test_slot_conflict(self, system, customer):
        manager = system.booking_manager
        manager.create_booking(customer.id, "100", shooting_date=date(2025, 4, 10), shooting_time="10:00")
        with pytest.raises(ValidationError, match="same date and time"):
            manager.create_booking(customer.id, "100", shooting_date=date(2025, 4, 10), shooting_time="10:00")

        # Different time on the same day is fine
        manager.create_booking(customer.id, "100", shooting_date=date(2025, 4, 10), shooting_time="12:00")
        assert balance_of(system, customer) == Decimal("200")

    def test_cancelled_booking_frees_slot(self, system, customer):
        manager = system.booking_manager
        first = manager.create_booking(customer.id, "100", shooting_date=date(2025, 4, 10),
                                       shooting_time="10:00")
        manager.cancel_booking(first.id)
        manager.create_booking(customer.id, "100", shooting_date=date(2025, 4, 10), shooting_time="10:00")

    def test_create_is_audited(self, system, customer):
        booking = system.booking_manager.create_booking(customer.id, "80")
        events = system.audit_trail.get_events_for_entity("booking", booking.id)
        assert events[0].event_type == AuditEventType.BOOKING_CREATED


class TestBookingLifecycle:

    @pytest.fixture
    def booking(self, system, customer):
        return system.booking_manager.create_booking(customer.id, "500")

    def test_cancel_credits_price_back(self, system, customer, booking):
        cancelled = system.booking_manager.cancel_booking(booking.id)
        assert cancelled.status == BookingStatus.CANCELLED
        assert balance_of(system, customer) == Decimal("0")

    def test_reopen_charges_again(self, system, customer, booking):
        system.booking_manager.cancel_booking(booking.id)
        system.booking_manager.update_status(booking.id, BookingStatus.COMPLETED)
        assert balance_of(system, customer) == Decimal("500")

    def test_status_change_between_open_states_keeps_balance(self, system, customer, booking):
        system.booking_manager.update_status(booking.id, BookingStatus.IN_PROGRESS)
        system.booking_manager.update_status(booking.id, BookingStatus.COMPLETED)
        assert balance_of(system, customer) == Decimal("500")

    def test_same_status_is_a_no_op(self, system, booking):
        system.booking_manager.update_status(booking.id, BookingStatus.PENDING)
        events = system.audit_trail.get_events_for_entity("booking", booking.id)
        assert [e.event_type for e in events] == [AuditEventType.BOOKING_CREATED]

    def test_reprice_moves_balance_by_difference(self, system, customer, booking):
        updated = system.booking_manager.update_booking(booking.id, total_selling_price="650")
        assert updated.total_selling_price == Decimal("650")
        assert balance_of(system, customer) == Decimal("650")

        system.booking_manager.update_booking(booking.id, total_selling_price="400")
        assert balance_of(system, customer) == Decimal("400")

    def test_reprice_cancelled_booking_keeps_balance(self, system, customer, booking):
        system.booking_manager.cancel_booking(booking.id)
        system.booking_manager.update_booking(booking.id, total_selling_price="900")
        assert balance_of(system, customer) == Decimal("0")

    def test_reschedule_into_taken_slot(self, system, customer, booking):
        system.booking_manager.create_booking(customer.id, "100", shooting_date=date(2025, 5, 1),
                                              shooting_time="09:00")
        with pytest.raises(ValidationError):
            system.booking_manager.update_booking(booking.id, shooting_date=date(2025, 5, 1),
                                                  shooting_time="09:00")
        assert balance_of(system, customer) == Decimal("600")

    def test_delete_credits_price_back(self, system, customer, booking):
        assert system.booking_manager.delete_booking(booking.id)
        assert balance_of(system, customer) == Decimal("0")
        assert system.booking_manager.get_booking(booking.id) is None

    def test_delete_after_customer_removed(self, system, customer, booking):
        system.customer_manager.delete_customer(customer.id)
        assert system.booking_manager.delete_booking(booking.id)

    def test_unknown_booking(self, system):
        with pytest.raises(NotFoundError):
            system.booking_manager.cancel_booking("missing")

    def test_concurrent_cancels_credit_once(self, system, customer, booking):
        threads = [threading.Thread(target=system.booking_manager.cancel_booking, args=(booking.id,))
                   for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert balance_of(system, customer) == Decimal("0")
        events = system.audit_trail.get_events_for_entity("booking", booking.id)
        assert [e.event_type for e in events].count(AuditEventType.BOOKING_STATUS_CHANGED) == 1


class TestBookingsOnSharedDatabase:
    """Two systems on one SQLite file, as with several API workers"""

    @pytest.fixture
    def systems(self, tmp_path):
        db_path = tmp_path / "studio.db"
        pair = [StudioSystem(storage=SQLiteStorage(db_path), config=StudioConfig(database_url="memory://"))
                for _ in range(2)]
        yield pair
        for s in pair:
            s.close()

    @pytest.fixture
    def shared_booking(self, systems):
        first, _ = systems
        customer = first.customer_manager.create_customer("Layla Haddad", "0791234567")
        return customer, first.booking_manager.create_booking(customer.id, "500")

    def assert_balance_matches_statement(self, system, customer_id, expected):
        stored = system.balances.get_balance(EntityKind.CUSTOMER, customer_id)
        statement = system.statement_builder.get_statement("customer", customer_id)
        assert stored == statement.final_balance == Decimal(expected)

    def test_cancel_after_other_worker_cancelled(self, systems, shared_booking):
        first, second = systems
        customer, booking = shared_booking
        assert first.booking_manager.get_booking(booking.id).status == BookingStatus.PENDING

        second.booking_manager.cancel_booking(booking.id)
        result = first.booking_manager.cancel_booking(booking.id)

        assert result.status == BookingStatus.CANCELLED
        self.assert_balance_matches_statement(first, customer.id, "0")

    def test_delete_after_other_worker_cancelled(self, systems, shared_booking):
        first, second = systems
        customer, booking = shared_booking

        second.booking_manager.cancel_booking(booking.id)
        assert first.booking_manager.delete_booking(booking.id)

        self.assert_balance_matches_statement(first, customer.id, "0")

    def test_reprice_after_other_worker_cancelled(self, systems, shared_booking):
        first, second = systems
        customer, booking = shared_booking

        second.booking_manager.cancel_booking(booking.id)
        first.booking_manager.update_booking(booking.id, total_selling_price="650")

        self.assert_balance_matches_statement(first, customer.id, "0")

    def test_concurrent_vouchers_from_both_workers(self, systems, shared_booking):
        customer, _ = shared_booking

        def post(system):
            for _ in range(10):
                system.voucher_service.post_journal(customer.id, "5")

        threads = [threading.Thread(target=post, args=(s,)) for s in systems]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assert_balance_matches_statement(systems[0], customer.id, "600")


class TestBookingQueries:

    def test_bookings_for_customer_in_creation_order(self, system, customer):
        manager = system.booking_manager
        first = manager.create_booking(customer.id, "1", shooting_date=date(2025, 6, 1))
        second = manager.create_booking(customer.id, "2", shooting_date=date(2025, 1, 1))
        cancelled = manager.create_booking(customer.id, "3", status=BookingStatus.CANCELLED)

        assert [b.id for b in manager.bookings_for_customer(customer.id)] == [first.id, second.id]
        everything = manager.bookings_for_customer(customer.id, include_cancelled=True)
        assert [b.id for b in everything] == [first.id, second.id, cancelled.id]

    def test_list_bookings_filters(self, system, customer):
        manager = system.booking_manager
        other = system.customer_manager.create_customer("Nour Odeh", "0799999999")
        april = manager.create_booking(customer.id, "10", shooting_date=date(2025, 4, 1))
        may = manager.create_booking(customer.id, "20", shooting_date=date(2025, 5, 1),
                                     source=BookingChannel.USER)
        manager.create_booking(other.id, "30", shooting_date=date(2025, 6, 1),
                               status=BookingStatus.COMPLETED)

        bookings, total = manager.list_bookings(customer_id=customer.id)
        assert total == 2
        assert [b.id for b in bookings] == [may.id, april.id]

        bookings, _ = manager.list_bookings(source=BookingChannel.USER)
        assert [b.id for b in bookings] == [may.id]

        _, total = manager.list_bookings(status=BookingStatus.COMPLETED)
        assert total == 1

        bookings, _ = manager.list_bookings(
            start=datetime(2025, 3, 15, tzinfo=timezone.utc),
            end=datetime(2025, 4, 30, tzinfo=timezone.utc)
        )
        assert [b.id for b in bookings] == [april.id]

    def test_list_bookings_pagination(self, system, customer):
        for day in range(1, 6):
            system.booking_manager.create_booking(customer.id, "1", shooting_date=date(2025, 7, day))
        bookings, total = system.booking_manager.list_bookings(page=2, limit=2)
        assert total == 5
        assert [b.shooting_date.day for b in bookings] == [3, 2]
