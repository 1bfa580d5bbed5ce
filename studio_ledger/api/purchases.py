"""
Purchase endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, status

from .dependencies import StudioSystem, get_studio_system
from .schemas import CreatePurchaseRequest
from .serializers import pagination, parse_date_param, purchase_out


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_purchase(
    request: CreatePurchaseRequest,
    system: StudioSystem = Depends(get_studio_system)
):
    """Record a purchase; credit purchases are added to the supplier balance"""
    purchase = system.purchase_manager.create_purchase(
        supplier_id=request.supplier_id,
        items=[item.dict() for item in request.items],
        payment_type=request.payment_type
    )
    return purchase_out(purchase)


@router.get("")
async def list_purchases(
    supplier_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    system: StudioSystem = Depends(get_studio_system)
):
    page = max(1, page)
    limit = max(1, limit)
    purchases, total = system.purchase_manager.list_purchases(
        supplier_id=supplier_id,
        start=parse_date_param(start_date, "start_date"),
        end=parse_date_param(end_date, "end_date", end_of_day=True),
        page=page,
        limit=limit
    )
    return {
        "purchases": [purchase_out(p) for p in purchases],
        "pagination": pagination(page, limit, total)
    }


@router.get("/{purchase_id}")
async def get_purchase(
    purchase_id: str,
    system: StudioSystem = Depends(get_studio_system)
):
    return purchase_out(system.purchase_manager.require_purchase(purchase_id))
