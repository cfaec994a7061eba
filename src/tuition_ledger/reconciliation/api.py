"""Admin API endpoints for audit, ledger listing and status recomputation."""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import ADMIN_RATE_LIMIT, limiter, verify_api_key
from ..database import InstallmentKind, TransactionStatus, get_db
from ..exceptions import UnknownPlan, UnknownStudent
from ..status import StatusResolver
from .models import AuditView, LedgerListing, OutstandingRecord
from .report import ReportGenerator
from .service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class RecomputeResponse(BaseModel):
    student_id: str
    payment_status: str


@router.get("/audit/{student_id}", response_model=None)
@limiter.limit(ADMIN_RATE_LIMIT)
async def get_audit(
    request: Request,
    student_id: str,
    format: Literal["json", "text", "csv"] = Query(default="json"),
    include_transactions: bool = Query(default=True),
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
):
    """
    Expected vs. actual installments for one student.

    JSON by default; `text` and `csv` return the rendered report.
    """
    service = ReconciliationService(db)
    try:
        view: AuditView = await service.audit(student_id)
    except UnknownStudent:
        raise HTTPException(status_code=404, detail="Student not found")
    except UnknownPlan as e:
        raise HTTPException(status_code=422, detail=str(e))

    if format == "json":
        return view.to_dict(include_transactions=include_transactions)

    output = service.generate_report(view, format=format)
    media_type = "text/csv" if format == "csv" else "text/plain"
    return PlainTextResponse(content=output, media_type=media_type)


@router.get("/transactions", response_model=LedgerListing)
@limiter.limit(ADMIN_RATE_LIMIT)
async def list_transactions(
    request: Request,
    status: Optional[TransactionStatus] = Query(default=None),
    kind: Optional[InstallmentKind] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=200),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    sort_key: Literal["date", "amount"] = Query(default="date"),
    sort_dir: Literal["asc", "desc"] = Query(default="desc"),
    page: int = Query(default=1, ge=1),
    all_rows: bool = Query(default=False, alias="all", description="Return every matching row"),
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
):
    """Filtered ledger listing with totals per status."""
    service = ReconciliationService(db)
    return await service.list_transactions(
        status=status.value if status else None,
        kind=kind.value if kind else None,
        search=search,
        month=month,
        sort_key=sort_key,
        sort_dir=sort_dir,
        page=page,
        all_rows=all_rows,
    )


@router.get("/outstanding", response_model=None)
@limiter.limit(ADMIN_RATE_LIMIT)
async def list_outstanding(
    request: Request,
    format: Literal["json", "text", "csv"] = Query(default="json"),
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
):
    """Students with tuition still owed."""
    service = ReconciliationService(db)
    try:
        records: List[OutstandingRecord] = await service.list_outstanding()
    except UnknownPlan as e:
        raise HTTPException(status_code=422, detail=str(e))

    if format == "json":
        return [r.model_dump(mode="json") for r in records]

    generator = ReportGenerator()
    if format == "csv":
        return PlainTextResponse(content=generator.outstanding_to_csv(records), media_type="text/csv")
    return PlainTextResponse(content=generator.outstanding_to_text(records), media_type="text/plain")


@router.post("/students/{student_id}/recompute", response_model=RecomputeResponse)
@limiter.limit(ADMIN_RATE_LIMIT)
async def recompute_status(
    request: Request,
    student_id: str,
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(verify_api_key),
):
    """
    Re-derive a student's payment status from the ledger.

    Called by the registration flow after manual verification steps.
    """
    resolver = StatusResolver(db)
    try:
        status = await resolver.recompute(student_id)
    except UnknownStudent:
        raise HTTPException(status_code=404, detail="Student not found")
    except UnknownPlan as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(f"Recomputed status for student {student_id}: {status.value}")
    return RecomputeResponse(student_id=student_id, payment_status=status.value)


@router.get("/health")
async def admin_health():
    """Health check endpoint for the admin API."""
    return {"status": "healthy", "service": "tuition-ledger"}
