import logging
from fastapi import APIRouter, Depends, Request

from safealert.models.models import User
from safealert.schemas.panic import PanicTriggerRequest, PanicResponse
from safealert.utils.panic import PanicOrchestrator
from safealert.utils.security import get_current_user

router = APIRouter(
    prefix="/panic",
    tags=["Panic"],
    responses={
        400: {"description": "No active emergency contacts"},
        401: {"description": "Authentication required"},
    },
)

logger = logging.getLogger(__name__)


def get_orchestrator(request: Request) -> PanicOrchestrator:
    return request.app.state.orchestrator


# ---------------- TRIGGER PANIC ----------------
@router.post("", response_model=PanicResponse)
async def trigger_panic(
    trigger: PanicTriggerRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: PanicOrchestrator = Depends(get_orchestrator),
):
    """
    Activate the emergency protocol for the calling user.
    - Rejected (400) when the user has no active emergency contacts.
    - Enrichment or email failures are reported in the body, never as an error status.
    """
    return await orchestrator.handle_trigger(current_user, trigger)
