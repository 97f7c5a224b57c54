import asyncio
import logging
import secrets
import string
import time
from typing import Any, Awaitable, Dict, List, Optional

from safealert.exceptions import NoContactsError
from safealert.models.models import User
from safealert.schemas.enums import PanicStatus
from safealert.schemas.panic import Location, PanicResponse, PanicTriggerRequest
from safealert.utils.maps import HOSPITAL_CATEGORY, POLICE_STATION_CATEGORY

logger = logging.getLogger(__name__)

IMAGE_ANALYSIS_FAILED = "Failed to analyze image"
SAFETY_DATA_FAILED = "Failed to get safety information"
ADDRESS_UNAVAILABLE = "Address unavailable"
NEARBY_PLACES_LIMIT = 3

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 9


def generate_panic_id() -> str:
    """panic_<epoch ms>_<9 random base36 chars>; unique in practice, not cryptographically."""
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"panic_{int(time.time() * 1000)}_{suffix}"


def is_degraded(value: Any) -> bool:
    return isinstance(value, dict) and "error" in value


def _freeform_address(candidate: Optional[Dict[str, Any]]) -> Optional[str]:
    return ((candidate or {}).get("address") or {}).get("freeformAddress")


def nearest_places(candidates: List[Dict[str, Any]], default_name: str) -> List[Dict[str, Any]]:
    """Map raw POI candidates to {name, distance, address}, closest first, top 3."""
    places = [
        {
            "name": (candidate.get("poi") or {}).get("name") or default_name,
            "distance": candidate.get("dist") or 0,
            "address": _freeform_address(candidate) or ADDRESS_UNAVAILABLE,
        }
        for candidate in candidates
    ]
    places.sort(key=lambda place: place["distance"])
    return places[:NEARBY_PLACES_LIMIT]


def build_instructions(has_photo: bool, has_location: bool, places_found: bool, contacts_notified: bool) -> List[str]:
    return [
        "🚨 Emergency contacts have been notified" if contacts_notified
        else "⚠️ Emergency contacts could not be notified, call emergency services directly",
        "📍 Your location has been shared" if has_location else "📍 Location was not available",
        "🏥 Nearby safe places identified" if places_found else "🏥 Nearby safe places could not be looked up",
        "📷 Photo analysis completed" if has_photo else "📷 No photo captured",
        "🆘 Stay calm and move to a safe location",
    ]


async def _skipped() -> None:
    """Stand-in for an enrichment unit whose input was not supplied."""
    return None


class PanicOrchestrator:
    """
    Turns one panic trigger into a stored event, enrichment and an alert fan-out.

    Only an unauthenticated caller (handled by the auth dependency) or a user
    without active emergency contacts aborts the request. Every other failure
    (providers, persistence, email) is logged and reported inside the response.
    """

    def __init__(self, contacts, store, dispatcher, maps_client, vision_client):
        self.contacts = contacts
        self.store = store
        self.dispatcher = dispatcher
        self.maps = maps_client
        self.vision = vision_client

    async def handle_trigger(self, user: User, trigger: PanicTriggerRequest) -> PanicResponse:
        # 1. Contact resolution, nothing is written without at least one contact
        contacts = await self.contacts.list_active(user.id)
        if not contacts:
            logger.warning("Panic trigger rejected for user %s: no active emergency contacts", user.id)
            raise NoContactsError(user.id)

        # 2. Event creation
        panic_id = generate_panic_id()
        location = trigger.location
        logger.info(
            "🚨 Panic mode activated: %s user=%s location=%s photo=%s",
            panic_id, user.id,
            f"{location.lat}, {location.lng}" if location else "none",
            bool(trigger.photo),
        )
        persisted = await self._create_event(panic_id, user, trigger)

        # 3. Concurrent enrichment, each unit has its own failure boundary
        photo_unit = self.vision.analyze_image(trigger.photo) if trigger.photo else _skipped()
        location_unit = self._gather_safety_data(location) if location else _skipped()
        image_analysis, safety_data = await asyncio.gather(
            self._enrich(panic_id, "image_analysis", IMAGE_ANALYSIS_FAILED, photo_unit, persisted),
            self._enrich(panic_id, "safety_data", SAFETY_DATA_FAILED, location_unit, persisted),
        )

        # 4. Notification, attempted whatever enrichment produced
        payload = {
            "panicId": panic_id,
            "location": location.model_dump() if location else None,
            "timestamp": trigger.timestamp.isoformat(),
            "userName": user.name,
            "userEmail": user.email,
            "imageAnalysis": None if is_degraded(image_analysis) else image_analysis,
            "safetyData": None if is_degraded(safety_data) else safety_data,
        }
        notification_result = await self.dispatcher.dispatch(payload, contacts)

        # 5. Finalization
        if persisted:
            await self._save(
                panic_id,
                image_analysis=image_analysis,
                safety_data=safety_data,
                notification_result=notification_result,
                status=PanicStatus.PROCESSED,
            )

        logger.info(
            "Panic %s processed: image=%s safety=%s notified=%s",
            panic_id,
            "skipped" if image_analysis is None else ("failed" if is_degraded(image_analysis) else "ok"),
            "skipped" if safety_data is None else ("failed" if is_degraded(safety_data) else "ok"),
            notification_result.get("success"),
        )

        return PanicResponse(
            success=True,
            panic_id=panic_id,
            location=location,
            timestamp=trigger.timestamp,
            image_analysis=image_analysis,
            safety_data=safety_data,
            notification_result=notification_result,
            message="Emergency protocol activated successfully",
            instructions=build_instructions(
                has_photo=bool(trigger.photo),
                has_location=location is not None,
                places_found=safety_data is not None and not is_degraded(safety_data),
                contacts_notified=bool(notification_result.get("success")),
            ),
        )

    async def _create_event(self, panic_id: str, user: User, trigger: PanicTriggerRequest) -> bool:
        location = trigger.location
        fields = {
            "panic_id": panic_id,
            "user_id": user.id,
            "user_email": user.email,
            "latitude": location.lat if location else None,
            "longitude": location.lng if location else None,
            "timestamp": trigger.timestamp,
            "photo_present": bool(trigger.photo),
            "status": PanicStatus.ACTIVE,
            "image_analysis": None,
            "safety_data": None,
            "notification_result": None,
        }
        try:
            await self.store.create(fields)
            return True
        except Exception as e:
            logger.error(f"Failed to store panic event {panic_id}, continuing without persistence: {e}")
            return False

    async def _enrich(
        self,
        panic_id: str,
        field: str,
        error_message: str,
        unit: Awaitable[Optional[Dict[str, Any]]],
        persist: bool,
    ) -> Optional[Dict[str, Any]]:
        try:
            result = await unit
        except Exception as e:
            logger.warning(f"{error_message} for {panic_id}: {e}")
            result = {"error": error_message}

        if result is not None and persist:
            await self._save(panic_id, **{field: result})
        return result

    async def _gather_safety_data(self, location: Location) -> Dict[str, Any]:
        """Hospitals, police stations and address; any failure fails the whole unit."""
        results = await asyncio.gather(
            self.maps.find_nearby_places(location, HOSPITAL_CATEGORY),
            self.maps.find_nearby_places(location, POLICE_STATION_CATEGORY),
            self.maps.reverse_geocode(location),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        hospitals, police_stations, address = results
        return {
            "currentAddress": _freeform_address(address) or ADDRESS_UNAVAILABLE,
            "nearbyHospitals": nearest_places(hospitals, "Hospital"),
            "nearbyPoliceStations": nearest_places(police_stations, "Police Station"),
        }

    async def _save(self, panic_id: str, **fields: Any) -> None:
        """Best-effort field-level write; a store outage never stops the pipeline."""
        try:
            updated = await self.store.update(panic_id, **fields)
            if not updated:
                logger.warning("Panic event %s not found while saving %s", panic_id, ", ".join(fields))
        except Exception as e:
            logger.warning(f"Failed to persist {', '.join(fields)} for {panic_id}: {e}")
