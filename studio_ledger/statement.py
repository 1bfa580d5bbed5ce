"""
Statement Builder

Reconstructs the account statement of a customer or supplier from three
kinds of rows: stored ledger postings, invoices synthesized from bookings
(customers) and purchase rows synthesized from credit purchases (suppliers).
Rows are merged, sorted by (business date, insertion time), windowed by an
optional date range and walked once to produce running balances.

For suppliers the stored balance may contain an amount that was never
recorded as a posting or purchase (an initial balance or a direct admin
edit). That difference is surfaced as a reconciliation opening balance so
the statement's final balance agrees with the stored one.

The builder only reads. Its final balance is the authoritative display
balance; the stored balance field is a cache.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from .customers import CustomerManager
from .errors import ValidationError
from .ledger import EntityKind, LedgerStore, PostingType
from .logging_config import get_logger
from .money import split_debit_credit
from .sources import BookingSource, PurchaseSource, RowOrigin, SourceRow
from .suppliers import SupplierManager
from .timeutils import day_end, ensure_utc


ALL_TYPES = "all"


@dataclass
class StatementRow:
    """One statement line with its running balance"""
    date: datetime
    sort_key: datetime
    type: PostingType
    description: str
    debit: Decimal
    credit: Decimal
    amount: Decimal
    running_balance: Decimal
    origin: RowOrigin
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    posting_id: Optional[str] = None
    related_id: Optional[str] = None


@dataclass
class Statement:
    entity_kind: EntityKind
    entity_id: str
    entity: Optional[Dict[str, Any]]
    opening_balance: Decimal
    final_balance: Decimal
    entries: List[StatementRow] = field(default_factory=list)

    @property
    def total_debit(self) -> Decimal:
        return sum((row.debit for row in self.entries), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((row.credit for row in self.entries), Decimal("0"))


@dataclass
class BalanceCheck:
    """Stored balance against the balance recomputed from history"""
    entity_kind: EntityKind
    entity_id: str
    stored_balance: Decimal
    computed_balance: Decimal

    @property
    def drift(self) -> Decimal:
        return self.stored_balance - self.computed_balance

    @property
    def in_sync(self) -> bool:
        return self.drift == 0


def parse_type_filter(value: Union[str, PostingType, None]) -> Optional[PostingType]:
    """None or 'all' means no filter"""
    if value is None or value == "" or value == ALL_TYPES:
        return None
    return PostingType.parse(value)


class StatementBuilder:
    """Builds statements and balance checks for customers and suppliers"""

    def __init__(self, ledger: LedgerStore, customers: CustomerManager,
                 suppliers: SupplierManager, booking_source: BookingSource,
                 purchase_source: PurchaseSource):
        self.ledger = ledger
        self.customers = customers
        self.suppliers = suppliers
        self.booking_source = booking_source
        self.purchase_source = purchase_source
        self.logger = get_logger("studio_ledger.statement")

    def get_statement(
        self,
        entity_kind: Union[str, EntityKind],
        entity_id: str,
        from_date: Optional[Union[date, datetime]] = None,
        to_date: Optional[Union[date, datetime]] = None,
        type_filter: Union[str, PostingType, None] = None
    ) -> Statement:
        """
        Build the statement of one entity

        Args:
            entity_kind: customer or supplier
            entity_id: Entity ID; an unknown id yields entity=None, not an error
            from_date: Rows before this date are folded into the opening balance
            to_date: Rows after this date are dropped (inclusive; a plain date
                covers the whole day)
            type_filter: None/'all', a posting type, 'invoice' (booking rows
                only) or 'purchase' (credit purchase rows only). A supplier's
                reconciliation row is kept under every posting type filter.

        Raises:
            ValidationError: unknown entity kind or type, or missing entity id
        """
        kind = EntityKind.parse(entity_kind)
        if not entity_id:
            raise ValidationError("Entity ID is required")
        row_type = parse_type_filter(type_filter)
        if from_date is not None:
            from_date = ensure_utc(from_date)
        if to_date is not None:
            to_date = day_end(to_date) if not isinstance(to_date, datetime) else ensure_utc(to_date)

        entity = self._load_entity(kind, entity_id)
        rows = self._collect_rows(kind, entity_id, row_type)

        opening = Decimal("0")
        adjustment = self._reconciliation_adjustment(kind, entity_id, entity)
        # only the invoice and purchase filters hide the reconciliation row
        if adjustment and row_type not in (PostingType.INVOICE, PostingType.PURCHASE):
            if from_date is None:
                rows.append(SourceRow.reconciliation(adjustment))
            else:
                opening += adjustment

        rows.sort(key=lambda r: (r.date, r.sort_key))

        if from_date is not None:
            opening += sum((r.amount for r in rows if r.date < from_date), Decimal("0"))
            rows = [r for r in rows if r.date >= from_date]
        if to_date is not None:
            rows = [r for r in rows if r.date <= to_date]

        running = opening
        entries = []
        for row in rows:
            running += row.amount
            debit, credit = split_debit_credit(row.amount)
            entries.append(StatementRow(
                date=row.date,
                sort_key=row.sort_key,
                type=row.row_type,
                description=row.description,
                debit=debit,
                credit=credit,
                amount=row.amount,
                running_balance=running,
                origin=row.origin,
                reference_number=row.reference_number,
                notes=row.notes,
                posting_id=row.posting_id,
                related_id=row.related_id
            ))

        self.logger.debug(
            "Statement for %s %s: %d rows, opening %s, final %s",
            kind.value, entity_id, len(entries), opening, running
        )

        return Statement(
            entity_kind=kind,
            entity_id=entity_id,
            entity=entity.display_fields() if entity else None,
            opening_balance=opening,
            final_balance=running,
            entries=entries
        )

    def check_balance(self, entity_kind: Union[str, EntityKind], entity_id: str) -> BalanceCheck:
        """
        Compare the stored balance with the sum of recorded history

        For suppliers a non-zero drift is the reconciliation opening balance
        shown on the statement.

        Raises:
            ValidationError: unknown entity kind or missing entity id
            NotFoundError: unknown entity
        """
        kind = EntityKind.parse(entity_kind)
        if not entity_id:
            raise ValidationError("Entity ID is required")
        if kind == EntityKind.CUSTOMER:
            entity = self.customers.require_customer(entity_id)
        else:
            entity = self.suppliers.require_supplier(entity_id)

        computed = sum((r.amount for r in self._collect_rows(kind, entity_id, None)), Decimal("0"))
        check = BalanceCheck(kind, entity_id, entity.balance, computed)
        if not check.in_sync:
            self.logger.warning(
                "Stored balance of %s %s differs from history by %s",
                kind.value, entity_id, check.drift
            )
        return check

    def _load_entity(self, kind: EntityKind, entity_id: str):
        if kind == EntityKind.CUSTOMER:
            return self.customers.get_customer(entity_id)
        return self.suppliers.get_supplier(entity_id)

    def _collect_rows(self, kind: EntityKind, entity_id: str,
                      row_type: Optional[PostingType]) -> List[SourceRow]:
        rows: List[SourceRow] = []

        # invoice and purchase filters select synthesized rows only
        if row_type not in (PostingType.INVOICE, PostingType.PURCHASE):
            rows.extend(SourceRow.from_posting(p)
                        for p in self.ledger.query(kind, entity_id, posting_type=row_type))

        if kind == EntityKind.CUSTOMER and row_type in (None, PostingType.INVOICE):
            rows.extend(self.booking_source.invoice_rows(entity_id))
        elif kind == EntityKind.SUPPLIER and row_type in (None, PostingType.PURCHASE):
            rows.extend(self.purchase_source.purchase_rows(entity_id))

        return rows

    def _reconciliation_adjustment(self, kind: EntityKind, entity_id: str, entity) -> Decimal:
        """Stored supplier balance not explained by postings and credit purchases"""
        if kind != EntityKind.SUPPLIER or entity is None:
            return Decimal("0")
        return (entity.balance
                - self.ledger.total_for_entity(kind, entity_id)
                - self.purchase_source.total_credit(entity_id))
