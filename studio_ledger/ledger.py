"""
Ledger Store

Append-only collection of signed monetary postings against customers and
suppliers. Positive amounts increase what the entity owes, negative amounts
decrease it. Postings are immutable once appended and the store never touches
entity balances; callers keep the balance field in step.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Dict, List, Optional, Union
from enum import Enum
import math
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import ValidationError
from .money import to_decimal
from .timeutils import now_utc, ensure_utc, from_iso


class EntityKind(Enum):
    """The two tracked entity kinds"""
    CUSTOMER = "customer"
    SUPPLIER = "supplier"

    @property
    def table_name(self) -> str:
        return f"{self.value}s"

    @classmethod
    def parse(cls, value: Union[str, 'EntityKind', None]) -> 'EntityKind':
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"entity kind must be 'customer' or 'supplier', got {value!r}")


class PostingType(Enum):
    """Posting types; only JOURNAL and RECEIPT are inserted directly"""
    OPENING_BALANCE = "opening_balance"
    JOURNAL = "journal"      # Journal voucher, adds debt
    RECEIPT = "receipt"      # Receipt voucher, payment received
    INVOICE = "invoice"      # Synthesized from bookings
    RETURN = "return"
    PURCHASE = "purchase"    # Synthesized from credit purchases
    PAYMENT = "payment"

    @classmethod
    def parse(cls, value: Union[str, 'PostingType']) -> 'PostingType':
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"Unknown posting type: {value!r}")


@dataclass
class LedgerPosting(StorageRecord):
    """
    Signed monetary record against one entity

    `date` is the business date shown on statements; `created_at` is the
    insertion time and only breaks ties between postings on the same date.
    """
    entity_kind: EntityKind
    entity_id: str
    posting_type: PostingType
    date: datetime
    amount: Decimal
    notes: Optional[str] = None
    reference_number: Optional[str] = None
    payment_method: Optional[str] = None
    related_id: Optional[str] = None
    related_model: Optional[str] = None

    def __post_init__(self):
        if not self.entity_id:
            raise ValidationError("Posting must reference an entity")
        if not isinstance(self.amount, Decimal):
            self.amount = to_decimal(self.amount)

    @classmethod
    def from_dict(cls, data: Dict) -> 'LedgerPosting':
        return cls(
            id=data['id'],
            created_at=from_iso(data['created_at']),
            updated_at=from_iso(data['updated_at']),
            entity_kind=EntityKind(data['entity_kind']),
            entity_id=data['entity_id'],
            posting_type=PostingType(data['posting_type']),
            date=from_iso(data['date']),
            amount=Decimal(data['amount']),
            notes=data.get('notes'),
            reference_number=data.get('reference_number'),
            payment_method=data.get('payment_method'),
            related_id=data.get('related_id'),
            related_model=data.get('related_model')
        )


@dataclass
class PostingPage:
    """One page of postings with pagination info"""
    postings: List[LedgerPosting]
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class LedgerStore:
    """
    Persistence for ledger postings: append, query and paged listing
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 max_page_size: int = 100):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "ledger_postings"
        self.max_page_size = max_page_size

    def new_posting(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        posting_type: PostingType,
        amount: Decimal,
        date: Optional[datetime] = None,
        notes: Optional[str] = None,
        reference_number: Optional[str] = None,
        payment_method: Optional[str] = None,
        related_id: Optional[str] = None,
        related_model: Optional[str] = None
    ) -> LedgerPosting:
        """Build an unsaved posting; date defaults to now"""
        now = now_utc()
        return LedgerPosting(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            entity_kind=entity_kind,
            entity_id=entity_id,
            posting_type=posting_type,
            date=ensure_utc(date) if date else now,
            amount=amount,
            notes=notes or None,
            reference_number=reference_number or None,
            payment_method=payment_method or None,
            related_id=related_id,
            related_model=related_model
        )

    def append(self, posting: LedgerPosting) -> str:
        """
        Persist a new posting

        Returns:
            The posting id

        Raises:
            ValidationError: if a posting with the same id already exists
        """
        if self.storage.exists(self.table_name, posting.id):
            raise ValidationError(f"Posting {posting.id} already exists")

        self.storage.save(self.table_name, posting.id, posting.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.POSTING_CREATED,
            entity_type="posting",
            entity_id=posting.id,
            metadata={
                "entity_kind": posting.entity_kind.value,
                "entity_id": posting.entity_id,
                "posting_type": posting.posting_type.value,
                "amount": posting.amount,
                "date": posting.date
            }
        )
        return posting.id

    def get_posting(self, posting_id: str) -> Optional[LedgerPosting]:
        """Get a posting by ID"""
        data = self.storage.load(self.table_name, posting_id)
        if data:
            return LedgerPosting.from_dict(data)
        return None

    def query(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        posting_type: Optional[PostingType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[LedgerPosting]:
        """
        Postings of one entity in insertion order

        Args:
            entity_kind: customer or supplier
            entity_id: ID of the entity
            posting_type: Only this type when given
            start: Business date lower bound (inclusive)
            end: Business date upper bound (inclusive)
        """
        filters = {
            'entity_kind': entity_kind.value,
            'entity_id': entity_id
        }
        if posting_type:
            filters['posting_type'] = posting_type.value

        postings = [LedgerPosting.from_dict(data)
                    for data in self.storage.find(self.table_name, filters)]

        if start:
            postings = [p for p in postings if p.date >= start]
        if end:
            postings = [p for p in postings if p.date <= end]

        postings.sort(key=lambda p: (p.created_at, p.id))
        return postings

    def total_for_entity(self, entity_kind: EntityKind, entity_id: str) -> Decimal:
        """Sum of every posting amount for one entity"""
        return sum((p.amount for p in self.query(entity_kind, entity_id)), Decimal("0"))

    def list_postings(
        self,
        entity_kind: Optional[EntityKind] = None,
        entity_id: Optional[str] = None,
        posting_type: Optional[PostingType] = None,
        page: int = 1,
        limit: int = 20
    ) -> PostingPage:
        """
        Paged postings, newest business date first

        page is at least 1 and limit is clamped to [1, max_page_size].
        """
        page = max(1, int(page or 1))
        limit = min(self.max_page_size, max(1, int(limit or 1)))

        filters = {}
        if entity_kind:
            filters['entity_kind'] = entity_kind.value
        if entity_id:
            filters['entity_id'] = entity_id
        if posting_type:
            filters['posting_type'] = posting_type.value

        postings = [LedgerPosting.from_dict(data)
                    for data in self.storage.find(self.table_name, filters)]
        postings.sort(key=lambda p: (p.date, p.created_at), reverse=True)

        offset = (page - 1) * limit
        return PostingPage(
            postings=postings[offset:offset + limit],
            page=page,
            limit=limit,
            total=len(postings)
        )
