"""Durable on-device queue of captured calls, backed by SQLite."""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import Column, DateTime, Integer, String, create_engine, delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from mepcalls.device.exceptions import QueueStorageError
from mepcalls.device.models import CallRecord, CallType, SyncState, ensure_utc

logger = logging.getLogger(__name__)

DeviceBase = declarative_base()


class QueuedCall(DeviceBase):
    __tablename__ = "call_logs"

    id = Column(Integer, primary_key=True)
    provider_call_id = Column(String(64), unique=True, nullable=False)
    phone_number = Column(String(64), nullable=False)
    contact_name = Column(String(255))
    call_type = Column(String(16), nullable=False)
    duration_seconds = Column(Integer, nullable=False, default=0)
    captured_at = Column(DateTime, nullable=False, index=True)
    staff_id = Column(Integer, nullable=False)
    sync_state = Column(String(16), nullable=False, default=SyncState.PENDING.value, index=True)


class Preference(DeviceBase):
    __tablename__ = "preferences"

    key = Column(String(64), primary_key=True)
    value = Column(String(255), nullable=False)


def _naive_utc(value: datetime) -> datetime:
    return ensure_utc(value).replace(tzinfo=None)


def _to_record(row: QueuedCall) -> CallRecord:
    return CallRecord(
        provider_call_id=row.provider_call_id,
        phone_number=row.phone_number,
        contact_name=row.contact_name,
        call_type=CallType(row.call_type),
        duration_seconds=row.duration_seconds,
        captured_at=row.captured_at.replace(tzinfo=timezone.utc),
        staff_id=row.staff_id,
        sync_state=SyncState(row.sync_state),
    )


def create_device_engine(database_path: str) -> Engine:
    if database_path in ("", ":memory:"):
        engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            f"sqlite:///{database_path}", connect_args={"check_same_thread": False}
        )
    DeviceBase.metadata.create_all(bind=engine)
    return engine


class LocalCallQueue:
    """Append-only store of CallRecords with a per-row sync flag.

    Every operation runs in its own transaction under one lock, so the
    capturer and the dispatcher can never interleave writes.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self._lock = threading.Lock()

    @classmethod
    def from_path(cls, database_path: str) -> "LocalCallQueue":
        return cls(create_device_engine(database_path))

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def lock(self) -> threading.Lock:
        return self._lock

    def insert(self, record: CallRecord) -> bool:
        """Insert ``record`` unless its provider id is already queued."""
        stmt = (
            sqlite_insert(QueuedCall)
            .values(
                provider_call_id=record.provider_call_id,
                phone_number=record.phone_number,
                contact_name=record.contact_name,
                call_type=record.call_type.value,
                duration_seconds=record.duration_seconds,
                captured_at=_naive_utc(record.captured_at),
                staff_id=record.staff_id,
                sync_state=SyncState.PENDING.value,
            )
            .on_conflict_do_nothing(index_elements=["provider_call_id"])
        )
        with self._lock:
            try:
                with self._sessions.begin() as db:
                    created = db.execute(stmt).rowcount == 1
            except SQLAlchemyError as exc:
                raise QueueStorageError(f"Failed to queue call {record.provider_call_id}") from exc
        if created:
            logger.info("Queued call %s (%s)", record.provider_call_id, record.call_type.value)
        else:
            logger.debug("Call %s already queued", record.provider_call_id)
        return created

    def list_pending(self) -> List[CallRecord]:
        """All PENDING records, oldest capture first."""
        stmt = (
            select(QueuedCall)
            .where(QueuedCall.sync_state == SyncState.PENDING.value)
            .order_by(QueuedCall.captured_at.asc(), QueuedCall.id.asc())
        )
        with self._lock:
            try:
                with self._sessions() as db:
                    return [_to_record(row) for row in db.scalars(stmt).all()]
            except SQLAlchemyError as exc:
                raise QueueStorageError("Failed to read pending calls") from exc

    def mark_synced(self, provider_call_ids: Iterable[str]) -> int:
        """Flip the given records to SYNCED in one transaction."""
        ids = list(dict.fromkeys(provider_call_ids))
        if not ids:
            return 0
        stmt = (
            update(QueuedCall)
            .where(
                QueuedCall.provider_call_id.in_(ids),
                QueuedCall.sync_state == SyncState.PENDING.value,
            )
            .values(sync_state=SyncState.SYNCED.value)
        )
        with self._lock:
            try:
                with self._sessions.begin() as db:
                    changed = db.execute(stmt).rowcount
            except SQLAlchemyError as exc:
                raise QueueStorageError("Failed to mark calls as synced") from exc
        logger.debug("Marked %s of %s call(s) as synced", changed, len(ids))
        return changed

    def purge_synced_older_than(self, cutoff: datetime) -> int:
        """Best-effort retention sweep of SYNCED rows; never raises."""
        stmt = delete(QueuedCall).where(
            QueuedCall.sync_state == SyncState.SYNCED.value,
            QueuedCall.captured_at < _naive_utc(cutoff),
        )
        with self._lock:
            try:
                with self._sessions.begin() as db:
                    deleted = db.execute(stmt).rowcount
            except SQLAlchemyError:
                logger.exception("Retention sweep failed")
                return 0
        if deleted:
            logger.info("Purged %s synced call(s) older than %s", deleted, cutoff.isoformat())
        return deleted

    def recent(self, limit: int = 100) -> List[CallRecord]:
        stmt = select(QueuedCall).order_by(QueuedCall.captured_at.desc()).limit(limit)
        with self._lock:
            try:
                with self._sessions() as db:
                    return [_to_record(row) for row in db.scalars(stmt).all()]
            except SQLAlchemyError as exc:
                raise QueueStorageError("Failed to read recent calls") from exc

    def count(self, state: Optional[SyncState] = None) -> int:
        stmt = select(func.count(QueuedCall.id))
        if state is not None:
            stmt = stmt.where(QueuedCall.sync_state == state.value)
        with self._lock:
            try:
                with self._sessions() as db:
                    return db.scalar(stmt) or 0
            except SQLAlchemyError as exc:
                raise QueueStorageError("Failed to count calls") from exc


class DevicePreferences:
    """Small key/value store living next to the queue.

    Pass the queue's ``lock`` so both stay on one writer.
    """

    def __init__(self, engine: Engine, lock: Optional[threading.Lock] = None) -> None:
        self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        self._lock = lock or threading.Lock()

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._lock:
            try:
                with self._sessions() as db:
                    row = db.get(Preference, key)
                    return row.value if row else default
            except SQLAlchemyError as exc:
                raise QueueStorageError(f"Failed to read preference {key}") from exc

    def get_int(self, key: str, default: int) -> int:
        value = self.get(key)
        try:
            return int(value) if value is not None else default
        except ValueError:
            return default

    def set(self, key: str, value: str) -> None:
        with self._lock:
            try:
                with self._sessions.begin() as db:
                    row = db.get(Preference, key)
                    if row:
                        row.value = value
                    else:
                        db.add(Preference(key=key, value=value))
            except SQLAlchemyError as exc:
                raise QueueStorageError(f"Failed to store preference {key}") from exc
