"""
Ledger endpoints: vouchers, statements and posting lists
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from .dependencies import StudioSystem, get_studio_system
from .schemas import JournalVoucherRequest, ReceiptVoucherRequest
from .serializers import (
    balance_check_out,
    entity_out,
    pagination,
    parse_date_param,
    posting_out,
    statement_out,
)
from ..ledger import EntityKind
from ..statement import parse_type_filter


router = APIRouter()


@router.post("/journal", status_code=status.HTTP_201_CREATED)
async def post_journal(
    request: JournalVoucherRequest,
    system: StudioSystem = Depends(get_studio_system)
):
    """Journal voucher: add debt to a customer"""
    result = system.voucher_service.post_journal(
        customer_id=request.customer_id,
        amount=request.amount,
        date=parse_date_param(request.date, "date"),
        notes=request.notes,
        reference_number=request.reference_number
    )
    return {**posting_out(result.posting), "entity": entity_out(result.entity)}


@router.post("/receipt", status_code=status.HTTP_201_CREATED)
async def post_receipt(
    request: ReceiptVoucherRequest,
    system: StudioSystem = Depends(get_studio_system)
):
    """Receipt voucher: payment received from a customer"""
    result = system.voucher_service.post_receipt(
        customer_id=request.customer_id,
        amount=request.amount,
        date=parse_date_param(request.date, "date"),
        payment_method=request.payment_method,
        notes=request.notes,
        reference_number=request.reference_number
    )
    return {**posting_out(result.posting), "entity": entity_out(result.entity)}


@router.get("/statement")
async def get_statement(
    entity_kind: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    from_date: Optional[str] = Query(None, alias="from"),
    to_date: Optional[str] = Query(None, alias="to"),
    type_filter: Optional[str] = Query(None, alias="type"),
    system: StudioSystem = Depends(get_studio_system)
):
    """Account statement of a customer or supplier"""
    statement = system.statement_builder.get_statement(
        entity_kind,
        entity_id,
        from_date=parse_date_param(from_date, "from"),
        to_date=parse_date_param(to_date, "to", end_of_day=True),
        type_filter=type_filter
    )
    return statement_out(statement)


@router.get("/entries")
async def list_entries(
    entity_kind: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    posting_type: Optional[str] = Query(None, alias="type"),
    page: Optional[int] = None,
    limit: Optional[int] = None,
    system: StudioSystem = Depends(get_studio_system)
):
    """Stored postings, newest first"""
    result = system.ledger.list_postings(
        entity_kind=EntityKind.parse(entity_kind) if entity_kind else None,
        entity_id=entity_id,
        posting_type=parse_type_filter(posting_type),
        page=page or 1,
        limit=limit or system.config.default_page_size
    )
    return {
        "entries": [posting_out(p) for p in result.postings],
        "pagination": pagination(result.page, result.limit, result.total)
    }


@router.get("/balance-check")
async def balance_check(
    entity_kind: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    system: StudioSystem = Depends(get_studio_system)
):
    """Stored balance compared with recorded history"""
    return balance_check_out(system.statement_builder.check_balance(entity_kind, entity_id))
