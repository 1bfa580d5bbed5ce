"""
Response shaping shared by the routers

Amounts leave the API as strings with two fraction digits.
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from ..bookings import Booking
from ..customers import Customer
from ..errors import ValidationError
from ..ledger import LedgerPosting
from ..money import format_amount
from ..purchases import Purchase
from ..statement import BalanceCheck, Statement, StatementRow
from ..suppliers import Supplier
from ..timeutils import parse_datetime, to_iso


def parse_date_param(value: Optional[str], name: str, end_of_day: bool = False) -> Optional[datetime]:
    """Parse an ISO query/body value, rejecting garbage with a 400"""
    try:
        return parse_datetime(value, end_of_day=end_of_day)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date, got {value!r}")


def pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0
    }


def entity_out(fields: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if fields is None:
        return None
    out = dict(fields)
    if isinstance(out.get("balance"), Decimal):
        out["balance"] = format_amount(out["balance"])
    return out


def customer_out(customer: Customer) -> Dict[str, Any]:
    return {
        "id": customer.id,
        "full_name": customer.full_name,
        "phone_number": customer.phone_number,
        "notes": customer.notes,
        "status": customer.status.value,
        "city": customer.city,
        "balance": format_amount(customer.balance),
        "created_at": customer.created_at.isoformat()
    }


def supplier_out(supplier: Supplier) -> Dict[str, Any]:
    return {
        "id": supplier.id,
        "name": supplier.name,
        "phone_number": supplier.phone_number,
        "balance": format_amount(supplier.balance),
        "created_at": supplier.created_at.isoformat()
    }


def posting_out(posting: LedgerPosting) -> Dict[str, Any]:
    return {
        "id": posting.id,
        "entity_kind": posting.entity_kind.value,
        "entity_id": posting.entity_id,
        "type": posting.posting_type.value,
        "date": posting.date.isoformat(),
        "amount": format_amount(posting.amount),
        "notes": posting.notes,
        "reference_number": posting.reference_number,
        "payment_method": posting.payment_method,
        "related_id": posting.related_id,
        "created_at": posting.created_at.isoformat()
    }


def row_out(row: StatementRow) -> Dict[str, Any]:
    return {
        "date": row.date.isoformat(),
        "sort_key": row.sort_key.isoformat(),
        "type": row.type.value,
        "origin": row.origin.value,
        "description": row.description,
        "reference_number": row.reference_number,
        "notes": row.notes,
        "debit": format_amount(row.debit),
        "credit": format_amount(row.credit),
        "amount": format_amount(row.amount),
        "running_balance": format_amount(row.running_balance),
        "posting_id": row.posting_id,
        "related_id": row.related_id
    }


def statement_out(statement: Statement) -> Dict[str, Any]:
    return {
        "entity_kind": statement.entity_kind.value,
        "entity_id": statement.entity_id,
        "entity": entity_out(statement.entity),
        "opening_balance": format_amount(statement.opening_balance),
        "entries": [row_out(row) for row in statement.entries],
        "final_balance": format_amount(statement.final_balance),
        "total_debit": format_amount(statement.total_debit),
        "total_credit": format_amount(statement.total_credit)
    }


def balance_check_out(check: BalanceCheck) -> Dict[str, Any]:
    return {
        "entity_kind": check.entity_kind.value,
        "entity_id": check.entity_id,
        "stored_balance": format_amount(check.stored_balance),
        "computed_balance": format_amount(check.computed_balance),
        "drift": format_amount(check.drift),
        "in_sync": check.in_sync
    }


def booking_out(booking: Booking) -> Dict[str, Any]:
    return {
        "id": booking.id,
        "customer_id": booking.customer_id,
        "shooting_date": to_iso(booking.shooting_date),
        "shooting_time": booking.shooting_time,
        "total_selling_price": format_amount(booking.total_selling_price),
        "status": booking.status.value,
        "source": booking.source.value,
        "notes": booking.notes,
        "created_at": booking.created_at.isoformat()
    }


def purchase_out(purchase: Purchase) -> Dict[str, Any]:
    return {
        "id": purchase.id,
        "supplier_id": purchase.supplier_id,
        "payment_type": purchase.payment_type.value,
        "total_amount": format_amount(purchase.total_amount),
        "items": [
            {
                "product_id": item.product_id,
                "quantity": item.quantity,
                "purchase_price": format_amount(item.purchase_price)
            }
            for item in purchase.items
        ],
        "created_at": purchase.created_at.isoformat()
    }


def parse_enum(enum_cls, value: Optional[str], name: str):
    """Optional enum query/body value; unknown values are a 400"""
    if value is None or value == "":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{name} must be one of: {allowed}")
