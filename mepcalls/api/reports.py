from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from mepcalls.core.database import get_db
from mepcalls.core.deps import get_current_user
from mepcalls.models import CallLog, User
from mepcalls.schemas import ReturningCustomer
from mepcalls.services.call_logs import excluded_numbers, find_returning_customers, to_utc_naive

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/returning-customers", response_model=list[ReturningCustomer])
def returning_customers(
    min_days: int = Query(7, ge=0, le=365),
    since: datetime | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    query = db.query(CallLog)
    if since:
        query = query.filter(CallLog.timestamp >= to_utc_naive(since))
    return find_returning_customers(query.all(), min_days, exclude=excluded_numbers(db))
