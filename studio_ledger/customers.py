"""
Customer Management Module

Manages customer profiles for the studio. A customer's balance is positive
when the customer owes the studio (debtor) and negative when the studio owes
the customer or holds a prepayment (creditor). The balance is never edited
directly: it moves only through vouchers and bookings.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import NotFoundError, ValidationError
from .ledger import EntityKind
from .timeutils import now_utc, from_iso


class CustomerStatus(Enum):
    """Customer standing"""
    ACTIVE = "active"
    BLOCKED = "blocked"
    VIP = "vip"


class BalanceType(Enum):
    """List filter on the sign of the balance"""
    DEBTOR = "debtor"      # balance > 0
    CREDITOR = "creditor"  # balance < 0


class PartySort(Enum):
    """List ordering shared by customers and suppliers"""
    NEWEST = "newest"
    HIGHEST_BALANCE = "highest_balance"
    LOWEST_BALANCE = "lowest_balance"


def matches_balance_type(balance: Decimal, balance_type: Optional[BalanceType]) -> bool:
    if balance_type == BalanceType.DEBTOR:
        return balance > 0
    if balance_type == BalanceType.CREDITOR:
        return balance < 0
    return True


def sort_parties(parties: List[Any], sort: PartySort) -> List[Any]:
    """Sort customers or suppliers in place and return them"""
    if sort == PartySort.HIGHEST_BALANCE:
        parties.sort(key=lambda p: p.balance, reverse=True)
    elif sort == PartySort.LOWEST_BALANCE:
        parties.sort(key=lambda p: p.balance)
    else:
        parties.sort(key=lambda p: p.created_at, reverse=True)
    return parties


@dataclass
class Customer(StorageRecord):
    """
    Customer profile with cached balance
    """
    full_name: str
    phone_number: str
    notes: Optional[str] = None
    status: CustomerStatus = CustomerStatus.ACTIVE
    city: Optional[str] = None
    balance: Decimal = Decimal("0")

    kind = EntityKind.CUSTOMER

    def __post_init__(self):
        self.full_name = (self.full_name or "").strip()
        self.phone_number = (self.phone_number or "").strip()
        if not self.full_name:
            raise ValidationError("Full name is required")
        if not self.phone_number:
            raise ValidationError("Phone number is required")

    def display_fields(self) -> Dict[str, Any]:
        """Fields attached to postings and statements"""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "balance": self.balance
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Customer':
        return cls(
            id=data['id'],
            created_at=from_iso(data['created_at']),
            updated_at=from_iso(data['updated_at']),
            full_name=data['full_name'],
            phone_number=data['phone_number'],
            notes=data.get('notes'),
            status=CustomerStatus(data.get('status') or CustomerStatus.ACTIVE.value),
            city=data.get('city'),
            balance=Decimal(str(data.get('balance') or "0"))
        )


class CustomerManager:
    """
    Manages customer lifecycle and listing
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = EntityKind.CUSTOMER.table_name

    def create_customer(
        self,
        full_name: str,
        phone_number: str,
        notes: Optional[str] = None,
        status: CustomerStatus = CustomerStatus.ACTIVE,
        city: Optional[str] = None
    ) -> Customer:
        """
        Create a new customer with a zero balance

        Raises:
            ValidationError: if name or phone number is missing
        """
        now = now_utc()
        customer = Customer(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            full_name=full_name,
            phone_number=phone_number,
            notes=notes,
            status=status,
            city=city
        )

        self._save_customer(customer)

        self.audit_trail.log_event(
            event_type=AuditEventType.CUSTOMER_CREATED,
            entity_type="customer",
            entity_id=customer.id,
            metadata={
                "full_name": customer.full_name,
                "phone_number": customer.phone_number,
                "status": customer.status.value
            }
        )

        return customer

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        """Get customer by ID"""
        customer_dict = self.storage.load(self.table_name, customer_id)
        if customer_dict:
            return Customer.from_dict(customer_dict)
        return None

    def require_customer(self, customer_id: str) -> Customer:
        """Get customer by ID or raise NotFoundError"""
        customer = self.get_customer(customer_id)
        if not customer:
            raise NotFoundError("customer", customer_id)
        return customer

    def update_customer_info(
        self,
        customer_id: str,
        full_name: Optional[str] = None,
        phone_number: Optional[str] = None,
        notes: Optional[str] = None,
        status: Optional[CustomerStatus] = None,
        city: Optional[str] = None
    ) -> Customer:
        """
        Update profile fields; the balance is not editable here

        The update is written as a field merge onto the freshly loaded
        document so a concurrent balance increment is not overwritten.
        """
        customer = self.require_customer(customer_id)

        changes: Dict[str, Any] = {}
        if full_name is not None:
            changes["full_name"] = full_name
        if phone_number is not None:
            changes["phone_number"] = phone_number
        if notes is not None:
            changes["notes"] = notes
        if status is not None:
            changes["status"] = status
        if city is not None:
            changes["city"] = city

        if changes:
            # Validate through the dataclass before writing
            candidate = Customer(**{**customer.__dict__, **changes})
            self._merge_fields(customer_id, {
                "full_name": candidate.full_name,
                "phone_number": candidate.phone_number,
                "notes": candidate.notes,
                "status": candidate.status.value,
                "city": candidate.city
            })

            self.audit_trail.log_event(
                event_type=AuditEventType.CUSTOMER_UPDATED,
                entity_type="customer",
                entity_id=customer_id,
                metadata={"changed_fields": sorted(changes)}
            )

        return self.require_customer(customer_id)

    def delete_customer(self, customer_id: str) -> bool:
        """
        Delete a customer

        Postings and bookings referencing the customer are kept for audit.
        """
        customer = self.require_customer(customer_id)
        deleted = self.storage.delete(self.table_name, customer_id)
        if deleted:
            self.audit_trail.log_event(
                event_type=AuditEventType.CUSTOMER_DELETED,
                entity_type="customer",
                entity_id=customer_id,
                metadata={"full_name": customer.full_name, "balance": customer.balance}
            )
        return deleted

    def list_customers(
        self,
        search: Optional[str] = None,
        status: Optional[CustomerStatus] = None,
        city: Optional[str] = None,
        balance_type: Optional[BalanceType] = None,
        sort: PartySort = PartySort.NEWEST,
        page: int = 1,
        limit: int = 50
    ) -> Tuple[List[Customer], int]:
        """
        Filter, sort and paginate customers

        Args:
            search: Case-insensitive match on name or phone number
            status: Only customers with this status
            city: Case-insensitive substring of the city
            balance_type: debtor (balance > 0) or creditor (balance < 0)
            sort: newest, highest_balance or lowest_balance
            page: 1-based page number
            limit: Page size

        Returns:
            (customers on the page, total matching customers)
        """
        customers = [Customer.from_dict(data) for data in self.storage.load_all(self.table_name)]

        if search:
            needle = search.lower()
            customers = [c for c in customers
                         if needle in c.full_name.lower() or needle in c.phone_number.lower()]
        if status:
            customers = [c for c in customers if c.status == status]
        if city:
            customers = [c for c in customers if c.city and city.lower() in c.city.lower()]
        customers = [c for c in customers if matches_balance_type(c.balance, balance_type)]

        sort_parties(customers, sort)

        page = max(1, page)
        limit = max(1, limit)
        offset = (page - 1) * limit
        return customers[offset:offset + limit], len(customers)

    def _merge_fields(self, customer_id: str, fields: Dict[str, Any]) -> None:
        with self.storage.atomic():
            data = self.storage.load_for_update(self.table_name, customer_id)
            if data is None:
                raise NotFoundError("customer", customer_id)
            data.update(fields)
            data["updated_at"] = now_utc().isoformat()
            self.storage.save(self.table_name, customer_id, data)

    def _save_customer(self, customer: Customer) -> None:
        """Save customer to storage"""
        self.storage.save(self.table_name, customer.id, customer.to_dict())
