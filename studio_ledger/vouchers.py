"""
Voucher Service

The only write path for manual ledger postings. A journal voucher adds debt
to a customer; a receipt voucher records a payment from the customer. Each
voucher changes the customer balance and appends the matching posting as
one unit of work.

Strategy: balance first, posting second, inside storage.atomic(). If the
posting append fails the balance change is undone with a compensating
increment and the original error propagates; if that compensation cannot be
applied a ConsistencyError is raised. Transactional backends additionally
roll the whole block back.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from .balances import BalanceAccumulator
from .customers import Customer, CustomerManager
from .errors import NotFoundError, ValidationError
from .ledger import EntityKind, LedgerPosting, LedgerStore, PostingType
from .logging_config import get_logger, log_action
from .money import to_decimal


@dataclass
class VoucherResult:
    """Created posting with the customer's display fields"""
    posting: LedgerPosting
    entity: Dict[str, Any]


class VoucherService:
    """Journal and receipt vouchers for customers"""

    def __init__(self, ledger: LedgerStore, balances: BalanceAccumulator,
                 customers: CustomerManager):
        self.ledger = ledger
        self.balances = balances
        self.customers = customers
        self.logger = get_logger("studio_ledger.vouchers")

    def post_journal(
        self,
        customer_id: str,
        amount: Any,
        date: Optional[Union[date, datetime]] = None,
        notes: Optional[str] = None,
        reference_number: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> VoucherResult:
        """
        Post a journal voucher: the customer owes `amount` more

        Raises:
            ValidationError: missing customer id or amount <= 0
            NotFoundError: unknown customer
            ConsistencyError: balance changed but could not be rolled back
        """
        value = self._validate(customer_id, amount)
        return self._post(
            customer_id, PostingType.JOURNAL, value,
            date=date, notes=notes, reference_number=reference_number,
            correlation_id=correlation_id
        )

    def post_receipt(
        self,
        customer_id: str,
        amount: Any,
        date: Optional[Union[date, datetime]] = None,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None,
        reference_number: Optional[str] = None,
        correlation_id: Optional[str] = None
    ) -> VoucherResult:
        """
        Post a receipt voucher: the customer paid `amount`

        Same validation and failure behaviour as post_journal.
        """
        value = self._validate(customer_id, amount)
        return self._post(
            customer_id, PostingType.RECEIPT, -value,
            date=date, notes=notes, reference_number=reference_number,
            payment_method=payment_method, correlation_id=correlation_id
        )

    def _validate(self, customer_id: str, amount: Any) -> Decimal:
        if not customer_id:
            raise ValidationError("Customer ID is required")
        try:
            value = to_decimal(amount)
        except ValueError:
            raise ValidationError(f"Amount must be a number, got {amount!r}")
        if value <= 0:
            raise ValidationError("Amount must be positive")
        if not self.customers.get_customer(customer_id):
            raise NotFoundError("customer", customer_id)
        return value

    def _post(
        self,
        customer_id: str,
        posting_type: PostingType,
        signed_amount: Decimal,
        correlation_id: Optional[str] = None,
        **fields
    ) -> VoucherResult:
        posting = self.ledger.new_posting(
            EntityKind.CUSTOMER, customer_id, posting_type, signed_amount,
            related_model="Customer", **fields
        )

        _, updated = self.balances.apply_with(
            EntityKind.CUSTOMER, customer_id, signed_amount, posting_type.value,
            write=lambda: self.ledger.append(posting),
            related_id=posting.id
        )

        log_action(
            self.logger, "info", f"{posting_type.value.capitalize()} voucher posted for {abs(signed_amount)}",
            action=f"post_{posting_type.value}", resource=f"posting:{posting.id}",
            entity_kind=EntityKind.CUSTOMER.value, entity_id=customer_id,
            correlation_id=correlation_id,
            extra={"amount": str(signed_amount), "balance": updated.get("balance")}
        )

        return VoucherResult(posting=posting, entity=Customer.from_dict(updated).display_fields())
