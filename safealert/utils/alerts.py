import html
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from safealert.schemas.enums import AlertMethod, AlertStatus

logger = logging.getLogger(__name__)

NO_VALID_EMAILS = "No valid email addresses found"
DISPATCH_FAILED = "Failed to notify emergency contacts"
MAX_PLACES_IN_ALERT = 3

RECOMMENDED_ACTIONS = [
    "Call emergency services (911/112) if needed",
    "Contact the person immediately via phone or text",
    "Check their location using the map link above",
    "Consider going to help if you're nearby and it's safe",
    "Stay in contact until the situation is resolved",
]


def _getter(obj: Any) -> Callable:
    # Contacts arrive as ORM rows or plain dicts
    if isinstance(obj, dict):
        return obj.get
    return lambda key, default=None: getattr(obj, key, default)


# ---------------- ALERT MESSAGE FORMATTING ----------------
def google_maps_url(location: Optional[Dict[str, float]]) -> Optional[str]:
    if not location:
        return None
    return f"https://maps.google.com/?q={location['lat']},{location['lng']}"


def format_alert_time(value: Any) -> str:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.strftime("%Y-%m-%d %H:%M:%S UTC")
    return "Unknown"


def _coordinates(location: Dict[str, float]) -> str:
    return f"{location['lat']:.6f}, {location['lng']:.6f}"


def _km(distance: Any) -> str:
    try:
        return f"{float(distance) / 1000:.1f}km"
    except (TypeError, ValueError):
        return "?km"


def _alert_sections(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Pull the renderable pieces out of a dispatch payload."""
    location = payload.get("location")
    safety = payload.get("safetyData") or {}
    analysis = payload.get("imageAnalysis") or {}
    address = safety.get("currentAddress")
    if location and not address:
        address = _coordinates(location)

    return {
        "panic_id": payload.get("panicId", "unknown"),
        "time": format_alert_time(payload.get("timestamp")),
        "user_name": payload.get("userName") or "Unknown User",
        "user_email": payload.get("userEmail") or "unknown",
        "location": location,
        "address": address,
        "maps_url": google_maps_url(location),
        "description": analysis.get("description"),
        "confidence": analysis.get("confidence") or 0,
        "hospitals": (safety.get("nearbyHospitals") or [])[:MAX_PLACES_IN_ALERT],
        "police": (safety.get("nearbyPoliceStations") or [])[:MAX_PLACES_IN_ALERT],
    }


def format_alert_text(payload: Dict[str, Any], app_name: str = "SafeAlert") -> str:
    s = _alert_sections(payload)
    lines = [
        f"🚨 EMERGENCY ALERT - {app_name}",
        "",
        "⚠️ IMMEDIATE ATTENTION REQUIRED",
        f"{s['user_name']} ({s['user_email']}) has activated their emergency panic button.",
        "This is NOT a test. Please take immediate action.",
        "",
        "📋 EMERGENCY DETAILS:",
        f"🆔 Alert ID: {s['panic_id']}",
        f"⏰ Time: {s['time']}",
        f"👤 Person: {s['user_name']} ({s['user_email']})",
        "",
        "📍 LOCATION INFORMATION:",
    ]
    if s["location"]:
        lines += [
            f"🏠 Address: {s['address']}",
            f"🌐 Coordinates: {_coordinates(s['location'])}",
            f"🗺️ Google Maps: {s['maps_url']}",
        ]
    else:
        lines.append("❌ Location information not available")

    if s["description"]:
        lines += [
            "",
            "📷 AI SCENE ANALYSIS:",
            f"Description: {s['description']}",
            f"Confidence: {s['confidence'] * 100:.1f}%",
        ]

    if s["hospitals"] or s["police"]:
        lines += ["", "🏥 NEARBY EMERGENCY SERVICES:"]
        for title, places in (("🏥 Hospitals:", s["hospitals"]), ("🚔 Police Stations:", s["police"])):
            if not places:
                continue
            lines.append(title)
            for place in places:
                lines.append(f"• {place.get('name')} - {_km(place.get('distance'))} away")
                lines.append(f"  {place.get('address')}")

    lines += ["", "🔴 RECOMMENDED ACTIONS:"]
    lines += [f"{i}. {action}" for i, action in enumerate(RECOMMENDED_ACTIONS, start=1)]
    lines += [
        "",
        f"This alert was generated automatically by {app_name}'s emergency system.",
        f"Alert ID: {s['panic_id']}",
    ]
    return "\n".join(lines)


def format_alert_html(payload: Dict[str, Any], app_name: str = "SafeAlert") -> str:
    s = _alert_sections(payload)
    esc = lambda value: html.escape(str(value))  # noqa: E731

    parts = [
        "<!DOCTYPE html>",
        "<html><head><meta charset=\"utf-8\">",
        f"<title>🚨 EMERGENCY ALERT - {esc(app_name)}</title></head>",
        "<body style=\"font-family: Arial, sans-serif; color: #333;\">",
        "<div style=\"background: #dc2626; color: white; padding: 20px; text-align: center;\">",
        "<h1>🚨 EMERGENCY ALERT</h1>",
        f"<p>{esc(app_name)} Emergency System</p>",
        "</div>",
        "<div style=\"border-left: 4px solid #dc2626; padding: 15px;\">",
        "<h2>⚠️ IMMEDIATE ATTENTION REQUIRED</h2>",
        f"<p><strong>{esc(s['user_name'])}</strong> ({esc(s['user_email'])}) has activated their emergency panic button.</p>",
        "<p><strong>This is NOT a test. Please take immediate action.</strong></p>",
        "</div>",
        "<h3>📋 Emergency Details</h3>",
        f"<p><b>🆔 Alert ID:</b> {esc(s['panic_id'])}</p>",
        f"<p><b>⏰ Time:</b> {esc(s['time'])}</p>",
        f"<p><b>👤 Person:</b> {esc(s['user_name'])} ({esc(s['user_email'])})</p>",
    ]

    if s["location"]:
        parts += [
            "<div style=\"border-left: 4px solid #0ea5e9; padding: 15px;\">",
            "<h3>📍 Location Information</h3>",
            f"<p><b>🏠 Address:</b> {esc(s['address'])}</p>",
            f"<p><b>🌐 Coordinates:</b> {esc(_coordinates(s['location']))}</p>",
            f"<p><a href=\"{esc(s['maps_url'])}\" target=\"_blank\">🗺️ VIEW LOCATION ON GOOGLE MAPS</a></p>",
            "</div>",
        ]
    else:
        parts.append("<p style=\"color: #dc2626;\">❌ Location information not available</p>")

    if s["description"]:
        parts += [
            "<div style=\"border-left: 4px solid #dc2626; padding: 15px;\">",
            "<h3>📷 AI Scene Analysis</h3>",
            f"<p><b>Description:</b> {esc(s['description'])}</p>",
            f"<p><b>Confidence:</b> {s['confidence'] * 100:.1f}%</p>",
            "</div>",
        ]

    if s["hospitals"] or s["police"]:
        parts.append("<div style=\"border-left: 4px solid #22c55e; padding: 15px;\">")
        parts.append("<h3>🏥 Nearby Emergency Services</h3>")
        for title, places in (("🏥 Hospitals:", s["hospitals"]), ("🚔 Police Stations:", s["police"])):
            if not places:
                continue
            parts.append(f"<h4>{title}</h4><ul>")
            for place in places:
                parts.append(
                    f"<li><strong>{esc(place.get('name'))}</strong> - {_km(place.get('distance'))} away<br>"
                    f"<small>{esc(place.get('address'))}</small></li>"
                )
            parts.append("</ul>")
        parts.append("</div>")

    parts.append("<h3>🔴 RECOMMENDED ACTIONS</h3><ol>")
    parts += [f"<li>{esc(action)}</li>" for action in RECOMMENDED_ACTIONS]
    parts += [
        "</ol>",
        f"<p style=\"font-size: 12px; color: #666;\">This alert was generated automatically by {esc(app_name)}'s emergency system. "
        f"Alert ID: {esc(s['panic_id'])}</p>",
        "</body></html>",
    ]
    return "\n".join(parts)


def _failure(error: str, message: str, notifications: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "contactsNotified": 0,
        "emailsSent": 0,
        "notifications": notifications or [],
        "error": error,
        "message": message,
    }


# ---------------- ALERT DISPATCH ----------------
class NotificationDispatcher:
    """
    Formats the panic alert and emails it to the emergency contacts.

    Email is the only delivery channel; phone numbers are carried into the
    notification log for a future SMS channel. Calling dispatch() twice with the
    same panic id sends two batches. Does not raise (logs instead).
    """

    def __init__(self, transport, store, app_name: str = "SafeAlert"):
        self.transport = transport
        self.store = store
        self.app_name = app_name

    async def dispatch(self, payload: Dict[str, Any], contacts: Sequence[Any]) -> Dict[str, Any]:
        try:
            return await self._dispatch(payload, contacts)
        except Exception as e:
            logger.exception("Notification dispatch failed for %s: %s", payload.get("panicId"), e)
            return _failure(DISPATCH_FAILED, "Notification system encountered an error")

    async def _dispatch(self, payload: Dict[str, Any], contacts: Sequence[Any]) -> Dict[str, Any]:
        panic_id = payload.get("panicId")
        recipients = []
        for contact in contacts:
            get = _getter(contact)
            email = (get("email") or "").strip()
            if email:
                recipients.append((get, email))

        if not recipients:
            logger.warning("⚠️ No contact with an email address for %s, nothing dispatched", panic_id)
            return _failure(NO_VALID_EMAILS, "Emergency contacts have no email addresses on file")

        to = [email for _, email in recipients]
        subject = f"🚨 EMERGENCY ALERT: {payload.get('userName') or 'Someone'} needs help - {format_alert_time(payload.get('timestamp'))}"
        send_result = await self.transport.send_mail(
            to=to,
            subject=subject,
            html=format_alert_html(payload, self.app_name),
            text=format_alert_text(payload, self.app_name),
        )

        delivered = bool(send_result.get("success"))
        status = AlertStatus.SENT if delivered else AlertStatus.FAILED
        now = datetime.now(timezone.utc).isoformat()
        notifications = [
            {
                "contact": get("name") or email,
                "phone": get("phone_number") or get("phone"),
                "email": email,
                "status": status.value,
                "method": [AlertMethod.EMAIL.value],
                "messageId": send_result.get("messageId"),
                "timestamp": now,
            }
            for get, email in recipients
        ]

        try:
            await self.store.append_notifications(panic_id, notifications)
        except Exception as e:
            logger.warning(f"Failed to store notification records for {panic_id}: {e}")

        if not delivered:
            logger.warning("Emergency email for %s was not delivered: %s", panic_id, send_result.get("error"))
            return _failure(
                send_result.get("error") or "Email delivery failed",
                f"Failed to deliver emergency alert to {len(to)} contacts",
                notifications,
            )

        logger.info(f"✅ Emergency alert {panic_id} emailed to {len(to)} contacts")
        return {
            "success": True,
            "contactsNotified": len(to),
            "emailsSent": len(to),
            "notifications": notifications,
            "message": f"Emergency alerts sent to {len(to)} contacts",
        }
