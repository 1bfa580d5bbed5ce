"""
Customer management endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .dependencies import StudioSystem, get_studio_system
from .schemas import CreateCustomerRequest, UpdateCustomerRequest
from .serializers import customer_out, pagination, parse_enum
from ..customers import BalanceType, CustomerStatus, PartySort


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_customer(
    request: CreateCustomerRequest,
    system: StudioSystem = Depends(get_studio_system)
):
    """Create a new customer"""
    customer = system.customer_manager.create_customer(
        full_name=request.full_name,
        phone_number=request.phone_number,
        notes=request.notes,
        status=parse_enum(CustomerStatus, request.status, "status") or CustomerStatus.ACTIVE,
        city=request.city
    )
    return customer_out(customer)


@router.get("")
async def list_customers(
    search: Optional[str] = None,
    customer_status: Optional[str] = Query(None, alias="status"),
    city: Optional[str] = None,
    balance_type: Optional[str] = Query(None, alias="balanceType"),
    sort: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
    system: StudioSystem = Depends(get_studio_system)
):
    """List customers with filters"""
    page = max(1, page)
    limit = max(1, limit)
    customers, total = system.customer_manager.list_customers(
        search=search,
        status=parse_enum(CustomerStatus, customer_status, "status"),
        city=city,
        balance_type=parse_enum(BalanceType, balance_type, "balanceType"),
        sort=parse_enum(PartySort, sort, "sort") or PartySort.NEWEST,
        page=page,
        limit=limit
    )
    return {
        "customers": [customer_out(c) for c in customers],
        "pagination": pagination(page, limit, total)
    }


@router.get("/{customer_id}")
async def get_customer(
    customer_id: str,
    system: StudioSystem = Depends(get_studio_system)
):
    """Get customer by ID"""
    return customer_out(system.customer_manager.require_customer(customer_id))


@router.put("/{customer_id}")
async def update_customer(
    customer_id: str,
    request: UpdateCustomerRequest,
    system: StudioSystem = Depends(get_studio_system)
):
    """Update customer information; the balance is not editable"""
    customer = system.customer_manager.update_customer_info(
        customer_id=customer_id,
        full_name=request.full_name,
        phone_number=request.phone_number,
        notes=request.notes,
        status=parse_enum(CustomerStatus, request.status, "status"),
        city=request.city
    )
    return customer_out(customer)


@router.delete("/{customer_id}")
async def delete_customer(
    customer_id: str,
    system: StudioSystem = Depends(get_studio_system)
):
    """Delete a customer"""
    system.customer_manager.delete_customer(customer_id)
    return {"message": "Customer deleted successfully"}
