import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from safealert.models.models import User, EmergencyContact, PanicEvent, NotificationRecord
from safealert.schemas.enums import PanicStatus, AlertStatus

logger = logging.getLogger(__name__)

RECENT_EVENTS_LIMIT = 20
TERMINAL_STATUSES = (PanicStatus.RESOLVED, PanicStatus.CANCELLED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------- USERS ----------------------------
async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


# ---------------------------- EMERGENCY CONTACTS ----------------------------
async def get_active_emergency_contacts(db: AsyncSession, user_id: int) -> List[EmergencyContact]:
    """Active contacts of a user, primary contacts first."""
    result = await db.execute(
        select(EmergencyContact)
        .where(EmergencyContact.user_id == user_id, EmergencyContact.is_active.is_(True))
        .order_by(EmergencyContact.is_primary.desc(), EmergencyContact.id)
    )
    return list(result.scalars().all())


# ---------------------------- PANIC EVENTS ----------------------------
async def create_panic_event(db: AsyncSession, fields: Dict[str, Any]) -> PanicEvent:
    now = _utcnow()
    event = PanicEvent(**fields, created_at=now, updated_at=now)
    db.add(event)
    await db.commit()
    await db.refresh(event)
    logger.info(f"🆘 Panic event {event.panic_id} created for user {event.user_id}")
    return event


async def update_panic_event(db: AsyncSession, panic_id: str, fields: Dict[str, Any]) -> bool:
    """
    Field-level update of a single panic event.
    Only the given columns are written, so concurrent updates of
    different fields never clobber each other.
    """
    values = dict(fields)
    values["updated_at"] = _utcnow()
    result = await db.execute(
        update(PanicEvent).where(PanicEvent.panic_id == panic_id).values(**values)
    )
    await db.commit()
    return result.rowcount > 0


async def get_user_panic_events(db: AsyncSession, user_id: int, limit: int = RECENT_EVENTS_LIMIT) -> List[PanicEvent]:
    result = await db.execute(
        select(PanicEvent)
        .where(PanicEvent.user_id == user_id)
        .order_by(PanicEvent.created_at.desc(), PanicEvent.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_panic_event(db: AsyncSession, panic_id: str, user_id: int) -> PanicEvent:
    result = await db.execute(
        select(PanicEvent).where(PanicEvent.panic_id == panic_id, PanicEvent.user_id == user_id)
    )
    event = result.scalar_one_or_none()
    if not event:
        raise HTTPException(status_code=404, detail=f"Panic event {panic_id} not found")
    return event


async def set_panic_event_status(db: AsyncSession, panic_id: str, user_id: int, new_status: PanicStatus) -> PanicEvent:
    """Move an event to a terminal status (resolved / cancelled)."""
    event = await get_panic_event(db, panic_id, user_id)
    if event.status in TERMINAL_STATUSES:
        raise HTTPException(status_code=409, detail=f"Panic event {panic_id} is already {event.status.value}")

    event.status = new_status
    event.updated_at = _utcnow()
    await db.commit()
    await db.refresh(event)
    logger.info(f"Panic event {panic_id} marked {new_status.value}")
    return event


# ---------------------------- NOTIFICATIONS ----------------------------
async def create_notification_records(db: AsyncSession, panic_id: str, records: List[Dict[str, Any]]) -> int:
    """Append-only insert of the notification log for one dispatch."""
    rows = [
        NotificationRecord(
            panic_id=panic_id,
            contact=record["contact"],
            phone=record.get("phone"),
            email=record.get("email"),
            status=AlertStatus(record["status"]),
            method=list(record.get("method") or []),
            message_id=record.get("messageId"),
            timestamp=datetime.fromisoformat(record["timestamp"]) if record.get("timestamp") else _utcnow(),
        )
        for record in records
    ]
    db.add_all(rows)
    await db.commit()
    return len(rows)


async def get_notification_records(db: AsyncSession, panic_id: str) -> List[NotificationRecord]:
    result = await db.execute(
        select(NotificationRecord).where(NotificationRecord.panic_id == panic_id).order_by(NotificationRecord.id)
    )
    return list(result.scalars().all())


# ---------------------------- PIPELINE ADAPTERS ----------------------------
# The panic pipeline runs several stages concurrently; an AsyncSession must not
# be shared between tasks, so every call below opens its own session.

class EmergencyContactSource:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def list_active(self, user_id: int) -> List[EmergencyContact]:
        async with self._session_factory() as db:
            return await get_active_emergency_contacts(db, user_id)


class PanicEventStore:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def create(self, fields: Dict[str, Any]) -> PanicEvent:
        async with self._session_factory() as db:
            return await create_panic_event(db, fields)

    async def update(self, panic_id: str, **fields: Any) -> bool:
        async with self._session_factory() as db:
            return await update_panic_event(db, panic_id, fields)

    async def append_notifications(self, panic_id: str, records: List[Dict[str, Any]]) -> int:
        async with self._session_factory() as db:
            return await create_notification_records(db, panic_id, records)
