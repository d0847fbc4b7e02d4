from datetime import datetime
import csv
from io import StringIO
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session
from mepcalls.core.database import get_db
from mepcalls.core.deps import get_current_user, require_admin
from mepcalls.models import CallLog, Role, User
from mepcalls.schemas import CallLogIn, IngestResult, PaginatedCallLogs
from mepcalls.services.call_logs import (
    UnknownStaffError,
    delete_duplicates,
    excluded_numbers,
    filter_call_logs,
    ingest_call_logs,
    to_out,
)

router = APIRouter(prefix="/call-logs", tags=["call-logs"])


@router.post("", response_model=IngestResult)
def ingest(
    payload: list[CallLogIn],
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        return ingest_call_logs(db, payload)
    except UnknownStaffError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.get("", response_model=PaginatedCallLogs)
def list_call_logs(
    from_date: datetime | None = Query(default=None, alias="from"),
    to_date: datetime | None = Query(default=None, alias="to"),
    staff_id: int | None = None,
    call_type: str | None = Query(default=None, pattern="^(INCOMING|OUTGOING|MISSED|UNKNOWN)$"),
    number: str | None = None,
    exclude_excluded: bool = False,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if user.role != Role.ADMIN:
        staff_id = user.id
    query = filter_call_logs(
        db.query(CallLog),
        staff_id=staff_id,
        call_type=call_type,
        from_date=from_date,
        to_date=to_date,
        number=number,
        exclude=excluded_numbers(db) if exclude_excluded else (),
    )
    total = query.count()
    items = (
        query.order_by(CallLog.timestamp.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return PaginatedCallLogs(
        items=[to_out(item) for item in items], total=total, page=page, page_size=page_size
    )


@router.get("/export")
def export_call_logs(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    records = db.query(CallLog).order_by(CallLog.timestamp.desc()).all()
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(
        [
            "timestamp",
            "phone_number",
            "contact_name",
            "call_type",
            "duration",
            "staff",
            "phone_call_id",
        ]
    )
    for record in records:
        writer.writerow(
            [
                record.timestamp.isoformat(),
                record.phone_number,
                record.contact_name or "",
                record.call_type,
                record.duration,
                record.staff.name if record.staff else "",
                record.phone_call_id or "",
            ]
        )
    return Response(
        content=output.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=call-logs.csv"},
    )


@router.post("/dedupe")
def dedupe_call_logs(db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return {"status": "ok", "deleted": delete_duplicates(db)}
