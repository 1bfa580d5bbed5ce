"""
Supplier Management Module

Suppliers carry a balance driven by credit purchases. Unlike customers, the
balance may be given at creation and edited directly by an administrator;
the statement builder absorbs such edits as a reconciliation opening balance.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import NotFoundError, ValidationError
from .ledger import EntityKind
from .money import to_decimal
from .customers import BalanceType, PartySort, matches_balance_type, sort_parties
from .timeutils import now_utc, from_iso


@dataclass
class Supplier(StorageRecord):
    """Supplier profile with cached balance"""
    name: str
    phone_number: str
    balance: Decimal = Decimal("0")

    kind = EntityKind.SUPPLIER

    def __post_init__(self):
        self.name = (self.name or "").strip()
        self.phone_number = (self.phone_number or "").strip()
        if not self.name:
            raise ValidationError("Supplier name is required")
        if not self.phone_number:
            raise ValidationError("Phone number is required")

    def display_fields(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "phone_number": self.phone_number,
            "balance": self.balance
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Supplier':
        return cls(
            id=data['id'],
            created_at=from_iso(data['created_at']),
            updated_at=from_iso(data['updated_at']),
            name=data['name'],
            phone_number=data['phone_number'],
            balance=Decimal(str(data.get('balance') or "0"))
        )


class SupplierManager:
    """Manages suppliers"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = EntityKind.SUPPLIER.table_name

    def create_supplier(self, name: str, phone_number: str, balance: Any = None) -> Supplier:
        """
        Create a supplier, optionally with an initial (legacy) balance

        Raises:
            ValidationError: if name or phone number is missing or balance is not numeric
        """
        now = now_utc()
        supplier = Supplier(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            name=name,
            phone_number=phone_number,
            balance=self._parse_balance(balance) if balance is not None else Decimal("0")
        )
        self.storage.save(self.table_name, supplier.id, supplier.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.SUPPLIER_CREATED,
            entity_type="supplier",
            entity_id=supplier.id,
            metadata={"name": supplier.name, "balance": supplier.balance}
        )
        return supplier

    def get_supplier(self, supplier_id: str) -> Optional[Supplier]:
        data = self.storage.load(self.table_name, supplier_id)
        if data:
            return Supplier.from_dict(data)
        return None

    def require_supplier(self, supplier_id: str) -> Supplier:
        supplier = self.get_supplier(supplier_id)
        if not supplier:
            raise NotFoundError("supplier", supplier_id)
        return supplier

    def update_supplier(
        self,
        supplier_id: str,
        name: Optional[str] = None,
        phone_number: Optional[str] = None,
        balance: Any = None
    ) -> Supplier:
        """
        Update supplier fields

        Setting `balance` overwrites the cached value. This is the admin edit
        path; the difference to the recorded history shows up on the
        statement as an opening balance row.
        """
        supplier = self.require_supplier(supplier_id)

        changes: Dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if phone_number is not None:
            changes["phone_number"] = phone_number
        new_balance = self._parse_balance(balance) if balance is not None else None

        with self.storage.atomic():
            if changes:
                candidate = Supplier(**{**supplier.__dict__, **changes})
                data = self.storage.load_for_update(self.table_name, supplier_id)
                if data is None:
                    raise NotFoundError("supplier", supplier_id)
                data.update({"name": candidate.name, "phone_number": candidate.phone_number,
                             "updated_at": now_utc().isoformat()})
                self.storage.save(self.table_name, supplier_id, data)

            if new_balance is not None:
                # balance only ever changes through increment()
                current = Decimal(str(self.storage.load_for_update(self.table_name, supplier_id)["balance"]))
                self.storage.increment(self.table_name, supplier_id, "balance", new_balance - current)

        if changes:
            self.audit_trail.log_event(
                event_type=AuditEventType.SUPPLIER_UPDATED,
                entity_type="supplier",
                entity_id=supplier_id,
                metadata={"changed_fields": sorted(changes)}
            )
        if new_balance is not None:
            self.audit_trail.log_event(
                event_type=AuditEventType.BALANCE_SET,
                entity_type="supplier",
                entity_id=supplier_id,
                metadata={"previous_balance": supplier.balance, "balance": new_balance}
            )

        return self.require_supplier(supplier_id)

    def delete_supplier(self, supplier_id: str) -> bool:
        supplier = self.require_supplier(supplier_id)
        deleted = self.storage.delete(self.table_name, supplier_id)
        if deleted:
            self.audit_trail.log_event(
                event_type=AuditEventType.SUPPLIER_DELETED,
                entity_type="supplier",
                entity_id=supplier_id,
                metadata={"name": supplier.name, "balance": supplier.balance}
            )
        return deleted

    def list_suppliers(
        self,
        search: Optional[str] = None,
        balance_type: Optional[BalanceType] = None,
        sort: PartySort = PartySort.NEWEST
    ) -> List[Supplier]:
        """Filter and sort suppliers (not paginated)"""
        suppliers = [Supplier.from_dict(data) for data in self.storage.load_all(self.table_name)]

        if search:
            needle = search.lower()
            suppliers = [s for s in suppliers
                         if needle in s.name.lower() or needle in s.phone_number.lower()]
        suppliers = [s for s in suppliers if matches_balance_type(s.balance, balance_type)]

        return sort_parties(suppliers, sort)

    @staticmethod
    def _parse_balance(value: Any) -> Decimal:
        try:
            return to_decimal(value)
        except ValueError as e:
            raise ValidationError(str(e))
