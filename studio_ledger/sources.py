"""
Source adapters

Read-only views that turn records which are not ledger postings into
statement rows: non-cancelled bookings become customer invoices and credit
purchases become supplier purchase rows. Nothing is written back.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from .bookings import Booking, BookingManager
from .ledger import LedgerPosting, PostingType
from .purchases import Purchase, PurchaseManager
from .timeutils import EPOCH


class RowOrigin(Enum):
    """Where a statement row came from"""
    POSTING = "posting"
    INVOICE = "invoice"
    PURCHASE = "purchase"
    RECONCILIATION = "reconciliation"


DESCRIPTIONS = {
    PostingType.OPENING_BALANCE: "Opening balance",
    PostingType.JOURNAL: "Journal voucher",
    PostingType.RECEIPT: "Receipt voucher",
    PostingType.INVOICE: "Invoice",
    PostingType.RETURN: "Return",
    PostingType.PURCHASE: "Purchase",
    PostingType.PAYMENT: "Payment",
}


@dataclass(frozen=True)
class SourceRow:
    """
    Uniform row shape shared by every origin before sorting

    `date` is the primary sort key and `sort_key` (an insertion or creation
    timestamp) only breaks ties between rows on the same date.
    """
    origin: RowOrigin
    date: datetime
    sort_key: datetime
    row_type: PostingType
    amount: Decimal
    description: str
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    posting_id: Optional[str] = None
    related_id: Optional[str] = None

    @classmethod
    def from_posting(cls, posting: LedgerPosting) -> 'SourceRow':
        return cls(
            origin=RowOrigin.POSTING,
            date=posting.date,
            sort_key=posting.created_at,
            row_type=posting.posting_type,
            amount=posting.amount,
            description=DESCRIPTIONS[posting.posting_type],
            reference_number=posting.reference_number,
            notes=posting.notes,
            posting_id=posting.id,
            related_id=posting.related_id
        )

    @classmethod
    def from_booking(cls, booking: Booking) -> 'SourceRow':
        return cls(
            origin=RowOrigin.INVOICE,
            date=booking.invoice_date,
            sort_key=booking.created_at,
            row_type=PostingType.INVOICE,
            amount=booking.total_selling_price,
            description="Invoice (booking)",
            notes=booking.notes,
            related_id=booking.id
        )

    @classmethod
    def from_purchase(cls, purchase: Purchase) -> 'SourceRow':
        return cls(
            origin=RowOrigin.PURCHASE,
            date=purchase.created_at,
            sort_key=purchase.created_at,
            row_type=PostingType.PURCHASE,
            amount=purchase.total_amount,
            description="Credit purchase",
            related_id=purchase.id
        )

    @classmethod
    def reconciliation(cls, amount: Decimal) -> 'SourceRow':
        """Synthetic opening balance dated at the epoch so it sorts first"""
        return cls(
            origin=RowOrigin.RECONCILIATION,
            date=EPOCH,
            sort_key=EPOCH,
            row_type=PostingType.OPENING_BALANCE,
            amount=amount,
            description="Opening balance"
        )


class BookingSource:
    """Customer invoices synthesized from bookings"""

    def __init__(self, bookings: BookingManager):
        self.bookings = bookings

    def invoice_rows(self, customer_id: str) -> List[SourceRow]:
        return [SourceRow.from_booking(booking)
                for booking in self.bookings.bookings_for_customer(customer_id)]


class PurchaseSource:
    """Supplier purchase rows synthesized from credit purchases"""

    def __init__(self, purchases: PurchaseManager):
        self.purchases = purchases

    def purchase_rows(self, supplier_id: str) -> List[SourceRow]:
        return [SourceRow.from_purchase(purchase)
                for purchase in self.purchases.credit_purchases_for_supplier(supplier_id)]

    def total_credit(self, supplier_id: str) -> Decimal:
        return sum((row.amount for row in self.purchase_rows(supplier_id)), Decimal("0"))
