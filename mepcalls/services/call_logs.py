import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import String, func, or_, select
from sqlalchemy.orm import Query, Session

from mepcalls.models import CallLog, ExcludedContact, User
from mepcalls.schemas import CallLogIn, CallLogOut, IngestResult, ReturningCustomer
from mepcalls.services.phone import normalize_phone

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class UnknownStaffError(ValueError):
    def __init__(self, staff_ids: List[int]):
        self.staff_ids = staff_ids
        super().__init__(f"Unknown staff id(s): {', '.join(str(i) for i in staff_ids)}")


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _identity(item: CallLogIn, timestamp: datetime) -> tuple:
    if item.phone_call_id:
        return ("id", item.phone_call_id, item.staff_id)
    return ("natural", item.phone_number, timestamp, item.staff_id)


def _exists(db: Session, item: CallLogIn, timestamp: datetime) -> bool:
    query = db.query(CallLog.id).filter(CallLog.staff_id == item.staff_id)
    if item.phone_call_id:
        query = query.filter(CallLog.phone_call_id == item.phone_call_id)
    else:
        query = query.filter(
            CallLog.phone_number == item.phone_number, CallLog.timestamp == timestamp
        )
    return query.first() is not None


def ingest_call_logs(db: Session, items: List[CallLogIn]) -> IngestResult:
    """Persist a batch atomically, silently skipping already known calls."""
    staff_ids = {item.staff_id for item in items}
    known = {row[0] for row in db.query(User.id).filter(User.id.in_(staff_ids)).all()}
    unknown = sorted(staff_ids - known)
    if unknown:
        raise UnknownStaffError(unknown)
    created = 0
    duplicates = 0
    seen: set[tuple] = set()
    try:
        for item in items:
            timestamp = to_utc_naive(item.timestamp)
            key = _identity(item, timestamp)
            if key in seen or _exists(db, item, timestamp):
                duplicates += 1
                continue
            seen.add(key)
            db.add(
                CallLog(
                    phone_call_id=item.phone_call_id,
                    phone_number=item.phone_number,
                    call_type=item.call_type,
                    duration=item.duration,
                    contact_name=item.contact_name,
                    timestamp=timestamp,
                    staff_id=item.staff_id,
                )
            )
            created += 1
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info(
        "Ingested call log batch: received=%s created=%s duplicates=%s",
        len(items),
        created,
        duplicates,
    )
    return IngestResult(received=len(items), created=created, duplicates=duplicates)


def excluded_numbers(db: Session) -> set[str]:
    return {normalize_phone(row[0]) for row in db.query(ExcludedContact.phone_number).all()}


def _compact_number(column):
    """Numbers are stored as the device reported them; match without separators."""
    return func.replace(func.replace(column, " ", "", type_=String), "-", "", type_=String)


def filter_call_logs(
    query: Query,
    staff_id: Optional[int] = None,
    call_type: Optional[str] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    number: Optional[str] = None,
    exclude: Iterable[str] = (),
) -> Query:
    filters = []
    if staff_id is not None:
        filters.append(CallLog.staff_id == staff_id)
    if call_type:
        filters.append(CallLog.call_type == call_type)
    if from_date:
        filters.append(CallLog.timestamp >= to_utc_naive(from_date))
    if to_date:
        filters.append(CallLog.timestamp <= to_utc_naive(to_date))
    stored = _compact_number(CallLog.phone_number)
    if number:
        normalized = normalize_phone(number)
        if normalized:
            filters.append(stored.contains(normalized, autoescape=True))
    suffixes = [value for value in exclude if value]
    if suffixes:
        filters.append(~or_(*[stored.endswith(value, autoescape=True) for value in suffixes]))
    if filters:
        query = query.filter(*filters)
    return query


def delete_duplicates(db: Session) -> int:
    """Keep the lowest id per (phone number, timestamp, staff) and delete the rest."""
    keep = select(func.min(CallLog.id)).group_by(
        CallLog.phone_number, CallLog.timestamp, CallLog.staff_id
    )
    deleted = (
        db.query(CallLog)
        .filter(CallLog.id.not_in(keep))
        .delete(synchronize_session=False)
    )
    db.commit()
    if deleted:
        logger.info("Deleted %s duplicate call log(s)", deleted)
    return deleted


def to_out(log: CallLog) -> CallLogOut:
    payload = CallLogOut.model_validate(log)
    payload.staff_name = log.staff.name if log.staff else None
    return payload


def find_returning_customers(
    logs: Iterable[CallLog],
    min_days: int,
    exclude: Iterable[str] = (),
    since: Optional[datetime] = None,
) -> List[ReturningCustomer]:
    """Group calls by normalized number and keep contacts who called again
    at least ``min_days`` after their first call, longest gap first."""
    excluded = set(exclude)
    groups: dict[str, list[CallLog]] = {}
    for log in logs:
        if since and log.timestamp < to_utc_naive(since):
            continue
        normalized = normalize_phone(log.phone_number)
        if normalized in excluded:
            continue
        groups.setdefault(normalized, []).append(log)

    returning: List[ReturningCustomer] = []
    for calls in groups.values():
        if len(calls) < 2:
            continue
        calls.sort(key=lambda log: log.timestamp)
        first = calls[0].timestamp
        last = calls[-1].timestamp
        if (last - first).total_seconds() // SECONDS_PER_DAY < min_days:
            continue
        return_call = next(
            log.timestamp
            for log in calls[1:]
            if (log.timestamp - first).total_seconds() // SECONDS_PER_DAY >= min_days
        )
        display = next(
            (log.phone_number for log in calls if log.phone_number.startswith("+91")),
            calls[0].phone_number,
        )
        contact_name = next((log.contact_name for log in calls if log.contact_name), None)
        latest = calls[-1]
        returning.append(
            ReturningCustomer(
                phone_number=display,
                contact_name=contact_name,
                first_call=first,
                return_call=return_call,
                days_between=int((return_call - first).total_seconds() // SECONDS_PER_DAY),
                total_calls=len(calls),
                staff_name=latest.staff.name if latest.staff else None,
                call_history=[to_out(log) for log in reversed(calls)],
            )
        )
    returning.sort(key=lambda item: item.days_between, reverse=True)
    return returning
