from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional
from datetime import datetime
from safealert.schemas.enums import PanicStatus

# ---------------- LOCATION ----------------
class Location(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


# ---------------- TRIGGER ----------------
class PanicTriggerRequest(BaseModel):
    location: Optional[Location] = None
    timestamp: datetime
    photo: Optional[str] = None  # base64 data URI, never persisted


class PanicResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    panic_id: str
    location: Optional[Location] = None
    timestamp: datetime
    image_analysis: Optional[Dict[str, Any]] = None
    safety_data: Optional[Dict[str, Any]] = None
    notification_result: Optional[Dict[str, Any]] = None
    message: str
    instructions: List[str] = []


# ---------------- EVENT HISTORY ----------------
class PanicEventOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    panic_id: str
    location: Optional[Location] = None
    timestamp: datetime
    status: PanicStatus
    photo_present: bool = False
    image_analysis: Optional[Dict[str, Any]] = None
    safety_data: Optional[Dict[str, Any]] = None
    notification_result: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_orm_event(cls, event) -> "PanicEventOut":
        location = None
        if event.latitude is not None and event.longitude is not None:
            location = Location(lat=event.latitude, lng=event.longitude)
        return cls(
            panic_id=event.panic_id,
            location=location,
            timestamp=event.timestamp or event.created_at,
            status=event.status,
            photo_present=bool(event.photo_present),
            image_analysis=event.image_analysis,
            safety_data=event.safety_data,
            notification_result=event.notification_result,
            created_at=event.created_at,
            updated_at=event.updated_at,
        )


class PanicEventList(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    panic_events: List[PanicEventOut]
    count: int
