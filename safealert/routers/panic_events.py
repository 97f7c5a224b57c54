from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from safealert.crud import crud
from safealert.database.database import get_db
from safealert.models.models import User
from safealert.schemas.enums import PanicStatus
from safealert.schemas.panic import PanicEventList, PanicEventOut
from safealert.utils.security import get_current_user

router = APIRouter(
    prefix="/panic-events",
    tags=["Panic Events"],
    responses={404: {"description": "Not found"}},
)


# ---------------- GET MY PANIC EVENTS ----------------
@router.get("", response_model=PanicEventList)
async def get_my_panic_events(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """The caller's most recent panic events, newest first."""
    events = await crud.get_user_panic_events(db, current_user.id)
    items = [PanicEventOut.from_orm_event(event) for event in events]
    return PanicEventList(panic_events=items, count=len(items))


# ---------------- RESOLVE / CANCEL ----------------
@router.post("/{panic_id}/resolve", response_model=PanicEventOut)
async def resolve_panic_event(
    panic_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    event = await crud.set_panic_event_status(db, panic_id, current_user.id, PanicStatus.RESOLVED)
    return PanicEventOut.from_orm_event(event)


@router.post("/{panic_id}/cancel", response_model=PanicEventOut)
async def cancel_panic_event(
    panic_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    event = await crud.set_panic_event_status(db, panic_id, current_user.id, PanicStatus.CANCELLED)
    return PanicEventOut.from_orm_event(event)
