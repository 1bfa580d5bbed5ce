"""
Booking Management Module

Bookings are photo sessions sold to customers. Every non-cancelled booking is
owed by its customer: the customer balance moves by the booking price when
the booking is created, cancelled, re-opened, repriced or deleted. The booking
itself is never copied into the ledger; statements read it back as an invoice
row.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .balances import BalanceAccumulator
from .errors import NotFoundError, ValidationError
from .ledger import EntityKind
from .money import to_decimal
from .timeutils import now_utc, ensure_utc, from_iso, to_iso
from .logging_config import get_logger, log_action


class BookingStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingChannel(Enum):
    """Who entered the booking"""
    USER = "USER"
    ADMIN = "ADMIN"


@dataclass
class Booking(StorageRecord):
    """A booked session and its selling price"""
    customer_id: str
    shooting_date: Optional[datetime]
    total_selling_price: Decimal
    shooting_time: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    source: BookingChannel = BookingChannel.ADMIN
    notes: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self.status == BookingStatus.CANCELLED

    @property
    def receivable(self) -> Decimal:
        """Amount this booking contributes to the customer balance"""
        return Decimal("0") if self.is_cancelled else self.total_selling_price

    @property
    def invoice_date(self) -> datetime:
        return self.shooting_date or self.created_at

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Booking':
        return cls(
            id=data['id'],
            created_at=from_iso(data['created_at']),
            updated_at=from_iso(data['updated_at']),
            customer_id=data['customer_id'],
            shooting_date=from_iso(data.get('shooting_date')),
            total_selling_price=Decimal(data['total_selling_price']),
            shooting_time=data.get('shooting_time'),
            status=BookingStatus(data['status']),
            source=BookingChannel(data.get('source') or BookingChannel.ADMIN.value),
            notes=data.get('notes')
        )


class BookingManager:
    """
    Booking lifecycle with balance bookkeeping

    Each balance change and the booking write it belongs to run as one unit
    of work through BalanceAccumulator.apply_with.
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 balances: BalanceAccumulator):
        self.storage = storage
        self.audit_trail = audit_trail
        self.balances = balances
        self.table_name = "bookings"
        self.logger = get_logger("studio_ledger.bookings")

    def create_booking(
        self,
        customer_id: str,
        total_selling_price: Any,
        shooting_date: Optional[Union[date, datetime]] = None,
        shooting_time: Optional[str] = None,
        status: BookingStatus = BookingStatus.PENDING,
        source: BookingChannel = BookingChannel.ADMIN,
        notes: Optional[str] = None
    ) -> Booking:
        """
        Create a booking and charge its price to the customer

        Raises:
            ValidationError: missing customer id, negative price or taken slot
            NotFoundError: unknown customer
        """
        if not customer_id:
            raise ValidationError("Booking must reference a customer")
        price = self._parse_price(total_selling_price)
        if not self.storage.exists(EntityKind.CUSTOMER.table_name, customer_id):
            raise NotFoundError("customer", customer_id)

        shooting_at = ensure_utc(shooting_date) if shooting_date else None
        if shooting_at and shooting_time and self._slot_taken(shooting_at, shooting_time):
            raise ValidationError("Another booking exists at the same date and time")

        now = now_utc()
        booking = Booking(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            customer_id=customer_id,
            shooting_date=shooting_at,
            total_selling_price=price,
            shooting_time=shooting_time,
            status=status,
            source=source,
            notes=notes
        )

        self.balances.apply_with(
            EntityKind.CUSTOMER, customer_id, booking.receivable, "booking_created",
            write=lambda: self._save(booking),
            related_id=booking.id
        )

        self.audit_trail.log_event(
            event_type=AuditEventType.BOOKING_CREATED,
            entity_type="booking",
            entity_id=booking.id,
            metadata={
                "customer_id": customer_id,
                "total_selling_price": price,
                "shooting_date": to_iso(shooting_at),
                "status": status.value
            }
        )
        log_action(
            self.logger, "info", f"Booking created for {price}",
            action="create_booking", resource=f"booking:{booking.id}",
            entity_kind=EntityKind.CUSTOMER.value, entity_id=customer_id
        )
        return booking

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        data = self.storage.load(self.table_name, booking_id)
        if data:
            return Booking.from_dict(data)
        return None

    def require_booking(self, booking_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        if not booking:
            raise NotFoundError("booking", booking_id)
        return booking

    def _lock_booking(self, booking_id: str) -> Booking:
        """Current booking state, read inside the caller's unit of work"""
        data = self.storage.load_for_update(self.table_name, booking_id)
        if data is None:
            raise NotFoundError("booking", booking_id)
        return Booking.from_dict(data)

    def update_status(self, booking_id: str, status: BookingStatus) -> Booking:
        """
        Change the booking status

        Moving into `cancelled` credits the price back to the customer;
        moving out of it charges the price again. The booking is re-read
        under the write lock, so a status another writer already applied
        is not charged or credited twice.
        """
        with self.balances.unit_of_work():
            booking = self._lock_booking(booking_id)
            if booking.status == status:
                return booking

            previous = booking.status
            delta = -booking.receivable
            booking.status = status
            booking.updated_at = now_utc()
            delta += booking.receivable

            self.balances.apply_with(
                EntityKind.CUSTOMER, booking.customer_id, delta, "booking_status",
                write=lambda: self._save(booking),
                related_id=booking.id
            )

            self.audit_trail.log_event(
                event_type=AuditEventType.BOOKING_STATUS_CHANGED,
                entity_type="booking",
                entity_id=booking.id,
                metadata={"from": previous.value, "to": status.value, "balance_delta": delta}
            )
        return booking

    def cancel_booking(self, booking_id: str) -> Booking:
        return self.update_status(booking_id, BookingStatus.CANCELLED)

    def update_booking(
        self,
        booking_id: str,
        total_selling_price: Any = None,
        shooting_date: Optional[Union[date, datetime]] = None,
        shooting_time: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Booking:
        """
        Reschedule or reprice a booking

        A price change on a non-cancelled booking moves the customer balance
        by the difference.
        """
        price = self._parse_price(total_selling_price) if total_selling_price is not None else None

        with self.balances.unit_of_work():
            booking = self._lock_booking(booking_id)
            old_receivable = booking.receivable

            if price is not None:
                booking.total_selling_price = price
            if shooting_date is not None:
                booking.shooting_date = ensure_utc(shooting_date)
            if shooting_time is not None:
                booking.shooting_time = shooting_time
            if notes is not None:
                booking.notes = notes

            if (booking.shooting_date and booking.shooting_time
                    and self._slot_taken(booking.shooting_date, booking.shooting_time, exclude_id=booking.id)):
                raise ValidationError("Another booking exists at the same date and time")

            booking.updated_at = now_utc()
            delta = booking.receivable - old_receivable
            self.balances.apply_with(
                EntityKind.CUSTOMER, booking.customer_id, delta, "booking_updated",
                write=lambda: self._save(booking),
                related_id=booking.id
            )
        return booking

    def delete_booking(self, booking_id: str) -> bool:
        """Delete a booking; a non-cancelled booking's price is credited back"""
        with self.balances.unit_of_work():
            booking = self._lock_booking(booking_id)
            delta = -booking.receivable
            if not self.storage.exists(EntityKind.CUSTOMER.table_name, booking.customer_id):
                # Customer already removed; nothing left to credit
                delta = Decimal("0")

            deleted, _ = self.balances.apply_with(
                EntityKind.CUSTOMER, booking.customer_id, delta, "booking_deleted",
                write=lambda: self._delete(booking.id),
                related_id=booking.id
            )

            self.audit_trail.log_event(
                event_type=AuditEventType.BOOKING_DELETED,
                entity_type="booking",
                entity_id=booking.id,
                metadata={"customer_id": booking.customer_id, "balance_delta": delta}
            )
        return deleted

    def bookings_for_customer(self, customer_id: str, include_cancelled: bool = False) -> List[Booking]:
        """Bookings of one customer in creation order"""
        bookings = [Booking.from_dict(data)
                    for data in self.storage.find(self.table_name, {'customer_id': customer_id})]
        if not include_cancelled:
            bookings = [b for b in bookings if not b.is_cancelled]
        bookings.sort(key=lambda b: (b.created_at, b.id))
        return bookings

    def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        customer_id: Optional[str] = None,
        source: Optional[BookingChannel] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[Booking], int]:
        """Filter by status, customer, source and shooting date; latest shooting date first"""
        filters: Dict[str, Any] = {}
        if status:
            filters['status'] = status.value
        if customer_id:
            filters['customer_id'] = customer_id
        if source:
            filters['source'] = source.value

        bookings = [Booking.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        if start:
            bookings = [b for b in bookings if b.shooting_date and b.shooting_date >= start]
        if end:
            bookings = [b for b in bookings if b.shooting_date and b.shooting_date <= end]

        bookings.sort(key=lambda b: (b.invoice_date, b.created_at), reverse=True)

        page = max(1, page)
        limit = max(1, limit)
        offset = (page - 1) * limit
        return bookings[offset:offset + limit], len(bookings)

    def _slot_taken(self, shooting_date: datetime, shooting_time: str,
                    exclude_id: Optional[str] = None) -> bool:
        for data in self.storage.find(self.table_name, {'shooting_time': shooting_time}):
            if data['id'] == exclude_id or data['status'] == BookingStatus.CANCELLED.value:
                continue
            other = from_iso(data.get('shooting_date'))
            if other and other.date() == shooting_date.date():
                return True
        return False

    @staticmethod
    def _parse_price(value: Any) -> Decimal:
        try:
            price = to_decimal(value)
        except ValueError as e:
            raise ValidationError(str(e))
        if price < 0:
            raise ValidationError("Total selling price cannot be negative")
        return price

    def _save(self, booking: Booking) -> Booking:
        self.storage.save(self.table_name, booking.id, booking.to_dict())
        return booking

    def _delete(self, booking_id: str) -> bool:
        return self.storage.delete(self.table_name, booking_id)
