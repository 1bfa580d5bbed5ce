"""
Pydantic schemas for API requests

Amounts are accepted as strings or numbers and validated by the ledger
itself so that a bad amount is a 400 like every other rejected input.
"""

from typing import Any, List, Optional, Union
from pydantic import BaseModel, Field


AmountField = Optional[Union[str, int, float]]


# Voucher schemas
class JournalVoucherRequest(BaseModel):
    customer_id: Optional[str] = None
    amount: AmountField = Field(None, description="Positive amount, decimal string preferred")
    date: Optional[str] = None  # ISO date or datetime; defaults to now
    notes: Optional[str] = None
    reference_number: Optional[str] = None


class ReceiptVoucherRequest(JournalVoucherRequest):
    payment_method: Optional[str] = None


# Customer schemas
class CreateCustomerRequest(BaseModel):
    full_name: str
    phone_number: str
    notes: Optional[str] = None
    status: str = Field("active", description="Customer status (active, blocked, vip)")
    city: Optional[str] = None


class UpdateCustomerRequest(BaseModel):
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    city: Optional[str] = None


# Supplier schemas
class CreateSupplierRequest(BaseModel):
    name: str
    phone_number: str
    balance: AmountField = None


class UpdateSupplierRequest(BaseModel):
    name: Optional[str] = None
    phone_number: Optional[str] = None
    balance: AmountField = None


# Booking schemas
class CreateBookingRequest(BaseModel):
    customer_id: Optional[str] = None
    total_selling_price: AmountField = None
    shooting_date: Optional[str] = None  # ISO date string
    shooting_time: Optional[str] = None
    status: str = Field("pending", description="pending, in_progress, completed or cancelled")
    source: str = Field("ADMIN", description="USER or ADMIN")
    notes: Optional[str] = None


class UpdateBookingRequest(BaseModel):
    total_selling_price: AmountField = None
    shooting_date: Optional[str] = None
    shooting_time: Optional[str] = None
    notes: Optional[str] = None


class UpdateBookingStatusRequest(BaseModel):
    status: str


# Purchase schemas
class PurchaseItemModel(BaseModel):
    product_id: str
    quantity: Any = 1
    purchase_price: AmountField = None


class CreatePurchaseRequest(BaseModel):
    supplier_id: Optional[str] = None
    payment_type: str = Field(..., description="cash or credit")
    items: List[PurchaseItemModel] = Field(default_factory=list)
