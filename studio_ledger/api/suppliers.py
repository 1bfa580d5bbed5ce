"""
Supplier management endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .dependencies import StudioSystem, get_studio_system
from .schemas import CreateSupplierRequest, UpdateSupplierRequest
from .serializers import parse_enum, supplier_out
from ..customers import BalanceType, PartySort


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_supplier(
    request: CreateSupplierRequest,
    system: StudioSystem = Depends(get_studio_system)
):
    """Create a supplier, optionally with an opening balance"""
    supplier = system.supplier_manager.create_supplier(
        name=request.name,
        phone_number=request.phone_number,
        balance=request.balance
    )
    return supplier_out(supplier)


@router.get("")
async def list_suppliers(
    search: Optional[str] = None,
    balance_type: Optional[str] = Query(None, alias="balanceType"),
    sort: Optional[str] = None,
    system: StudioSystem = Depends(get_studio_system)
):
    suppliers = system.supplier_manager.list_suppliers(
        search=search,
        balance_type=parse_enum(BalanceType, balance_type, "balanceType"),
        sort=parse_enum(PartySort, sort, "sort") or PartySort.NEWEST
    )
    return [supplier_out(s) for s in suppliers]


@router.get("/{supplier_id}")
async def get_supplier(
    supplier_id: str,
    system: StudioSystem = Depends(get_studio_system)
):
    return supplier_out(system.supplier_manager.require_supplier(supplier_id))


@router.put("/{supplier_id}")
async def update_supplier(
    supplier_id: str,
    request: UpdateSupplierRequest,
    system: StudioSystem = Depends(get_studio_system)
):
    """Update a supplier; a balance here overwrites the stored balance"""
    supplier = system.supplier_manager.update_supplier(
        supplier_id,
        name=request.name,
        phone_number=request.phone_number,
        balance=request.balance
    )
    return supplier_out(supplier)


@router.delete("/{supplier_id}")
async def delete_supplier(
    supplier_id: str,
    system: StudioSystem = Depends(get_studio_system)
):
    system.supplier_manager.delete_supplier(supplier_id)
    return {"message": "Supplier deleted successfully"}
