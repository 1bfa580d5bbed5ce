"""
Purchase Management Module

Stock purchases from suppliers. A credit purchase adds its total to the
supplier balance in the same unit of work as the purchase write; a cash
purchase is settled on the spot and never touches the balance.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .balances import BalanceAccumulator
from .errors import NotFoundError, ValidationError
from .ledger import EntityKind
from .money import to_decimal
from .timeutils import now_utc, from_iso
from .logging_config import get_logger, log_action


class PaymentType(Enum):
    CASH = "cash"
    CREDIT = "credit"

    @classmethod
    def parse(cls, value: Union[str, 'PaymentType']) -> 'PaymentType':
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(f"payment type must be 'cash' or 'credit', got {value!r}")


@dataclass
class PurchaseItem:
    """One purchased product line"""
    product_id: str
    quantity: int
    purchase_price: Decimal

    def __post_init__(self):
        if not self.product_id:
            raise ValidationError("Each item must reference a product")
        try:
            quantity = to_decimal(self.quantity)
        except ValueError:
            raise ValidationError(f"Invalid quantity: {self.quantity!r}")
        if quantity < 1 or quantity != quantity.to_integral_value():
            raise ValidationError("Quantity must be a whole number of at least 1")
        self.quantity = int(quantity)
        try:
            self.purchase_price = to_decimal(self.purchase_price)
        except ValueError as e:
            raise ValidationError(str(e))
        if self.purchase_price < 0:
            raise ValidationError("Purchase price cannot be negative")

    @property
    def line_total(self) -> Decimal:
        return self.purchase_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "purchase_price": str(self.purchase_price)
        }


@dataclass
class Purchase(StorageRecord):
    supplier_id: str
    payment_type: PaymentType
    total_amount: Decimal
    items: List[PurchaseItem] = field(default_factory=list)

    @property
    def is_credit(self) -> bool:
        return self.payment_type == PaymentType.CREDIT

    @property
    def payable(self) -> Decimal:
        """Amount this purchase contributes to the supplier balance"""
        return self.total_amount if self.is_credit else Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "supplier_id": self.supplier_id,
            "payment_type": self.payment_type.value,
            "total_amount": str(self.total_amount),
            "items": [item.to_dict() for item in self.items]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Purchase':
        return cls(
            id=data['id'],
            created_at=from_iso(data['created_at']),
            updated_at=from_iso(data['updated_at']),
            supplier_id=data['supplier_id'],
            payment_type=PaymentType(data['payment_type']),
            total_amount=Decimal(data['total_amount']),
            items=[PurchaseItem(product_id=item['product_id'],
                                quantity=item['quantity'],
                                purchase_price=Decimal(item['purchase_price']))
                   for item in data.get('items', [])]
        )


class PurchaseManager:
    """Records purchases and keeps supplier balances in step"""

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail,
                 balances: BalanceAccumulator):
        self.storage = storage
        self.audit_trail = audit_trail
        self.balances = balances
        self.table_name = "purchases"
        self.logger = get_logger("studio_ledger.purchases")

    def create_purchase(
        self,
        supplier_id: str,
        items: List[Union[PurchaseItem, Dict[str, Any]]],
        payment_type: Union[str, PaymentType]
    ) -> Purchase:
        """
        Record a purchase

        Args:
            supplier_id: Supplier the goods were bought from
            items: PurchaseItem instances or dicts with product_id, quantity, purchase_price
            payment_type: cash or credit

        Returns:
            The stored purchase; total_amount is the sum of quantity x purchase_price

        Raises:
            ValidationError: no items, bad item values or unknown payment type
            NotFoundError: unknown supplier
        """
        if not supplier_id:
            raise ValidationError("Purchase must reference a supplier")
        if not items:
            raise ValidationError("At least one item is required")
        payment = PaymentType.parse(payment_type)
        lines = [item if isinstance(item, PurchaseItem) else PurchaseItem(**item) for item in items]
        if not self.storage.exists(EntityKind.SUPPLIER.table_name, supplier_id):
            raise NotFoundError("supplier", supplier_id)

        now = now_utc()
        purchase = Purchase(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            supplier_id=supplier_id,
            payment_type=payment,
            total_amount=sum((line.line_total for line in lines), Decimal("0")),
            items=lines
        )

        self.balances.apply_with(
            EntityKind.SUPPLIER, supplier_id, purchase.payable, "purchase_created",
            write=lambda: self.storage.save(self.table_name, purchase.id, purchase.to_dict()),
            related_id=purchase.id
        )

        self.audit_trail.log_event(
            event_type=AuditEventType.PURCHASE_CREATED,
            entity_type="purchase",
            entity_id=purchase.id,
            metadata={
                "supplier_id": supplier_id,
                "payment_type": payment.value,
                "total_amount": purchase.total_amount,
                "items": len(lines)
            }
        )
        log_action(
            self.logger, "info", f"{payment.value.capitalize()} purchase of {purchase.total_amount} recorded",
            action="create_purchase", resource=f"purchase:{purchase.id}",
            entity_kind=EntityKind.SUPPLIER.value, entity_id=supplier_id
        )
        return purchase

    def get_purchase(self, purchase_id: str) -> Optional[Purchase]:
        data = self.storage.load(self.table_name, purchase_id)
        if data:
            return Purchase.from_dict(data)
        return None

    def require_purchase(self, purchase_id: str) -> Purchase:
        purchase = self.get_purchase(purchase_id)
        if not purchase:
            raise NotFoundError("purchase", purchase_id)
        return purchase

    def credit_purchases_for_supplier(self, supplier_id: str) -> List[Purchase]:
        """Credit purchases of one supplier in creation order"""
        purchases = [Purchase.from_dict(data) for data in self.storage.find(self.table_name, {
            'supplier_id': supplier_id,
            'payment_type': PaymentType.CREDIT.value
        })]
        purchases.sort(key=lambda p: (p.created_at, p.id))
        return purchases

    def list_purchases(
        self,
        supplier_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[Purchase], int]:
        """Newest first, optionally by supplier and creation date range"""
        filters = {'supplier_id': supplier_id} if supplier_id else {}
        purchases = [Purchase.from_dict(data) for data in self.storage.find(self.table_name, filters)]
        if start:
            purchases = [p for p in purchases if p.created_at >= start]
        if end:
            purchases = [p for p in purchases if p.created_at <= end]
        purchases.sort(key=lambda p: p.created_at, reverse=True)

        page = max(1, page)
        limit = max(1, limit)
        offset = (page - 1) * limit
        return purchases[offset:offset + limit], len(purchases)
