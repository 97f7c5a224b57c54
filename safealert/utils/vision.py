# safealert/utils/vision.py
import asyncio
import base64
import binascii
import logging
import re
from typing import Any, Dict

import aiohttp

from safealert.config import Settings
from safealert.exceptions import ProviderError

logger = logging.getLogger(__name__)

DATA_URI_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")
WHITESPACE = re.compile(r"\s+")

ANALYZE_PARAMS = {
    "visualFeatures": "Objects,Description,Tags,Adult",
    "details": "Landmarks",
    "language": "en",
}


def decode_photo(photo_data_uri: str) -> bytes:
    """Strip the data URI prefix and decode the base64 image payload."""
    payload = DATA_URI_PREFIX.sub("", photo_data_uri.strip(), count=1)
    # encoders commonly wrap base64 at 76 columns
    payload = WHITESPACE.sub("", payload)
    try:
        image = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProviderError("Photo is not valid base64 image data") from e
    if not image:
        raise ProviderError("Photo is empty")
    return image


def map_analysis(result: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a Computer Vision v3.2 analyze response into the scene analysis payload."""
    captions = (result.get("description") or {}).get("captions") or []
    caption = captions[0] if captions else {}
    adult = result.get("adult") or {}

    landmarks = []
    for category in result.get("categories") or []:
        landmarks.extend((category.get("detail") or {}).get("landmarks") or [])

    return {
        "description": caption.get("text") or "No description available",
        "confidence": caption.get("confidence") or 0,
        "objects": [
            {"name": obj.get("object"), "confidence": obj.get("confidence"), "rectangle": obj.get("rectangle")}
            for obj in result.get("objects") or []
        ],
        "tags": [
            {"name": tag.get("name"), "confidence": tag.get("confidence")}
            for tag in result.get("tags") or []
        ],
        "isAdultContent": bool(adult.get("isAdultContent", False)),
        "isRacyContent": bool(adult.get("isRacyContent", False)),
        "landmarks": landmarks,
    }


class AzureVisionClient:
    """Scene description / object and tag detection via Azure Computer Vision."""

    def __init__(self, settings: Settings, session: aiohttp.ClientSession):
        self.endpoint = (settings.azure_vision_endpoint or "").rstrip("/")
        self.key = settings.azure_vision_key
        self.timeout = aiohttp.ClientTimeout(total=settings.provider_timeout_seconds)
        self.session = session

    async def analyze_image(self, photo_data_uri: str) -> Dict[str, Any]:
        if not self.endpoint or not self.key:
            raise ProviderError("Azure Vision endpoint or key not configured")

        image = decode_photo(photo_data_uri)
        headers = {
            "Ocp-Apim-Subscription-Key": self.key,
            "Content-Type": "application/octet-stream",
        }
        try:
            async with self.session.post(
                f"{self.endpoint}/vision/v3.2/analyze",
                params=ANALYZE_PARAMS,
                headers=headers,
                data=image,
                timeout=self.timeout,
            ) as resp:
                if resp.status < 200 or resp.status >= 300:
                    body = await resp.text()
                    raise ProviderError(f"Azure Vision error: {resp.status} - {body[:200]}")
                result = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ProviderError(f"Network error calling Azure Vision: {e}") from e

        analysis = map_analysis(result)
        logger.info("Azure Vision analysis completed: %s", analysis["description"])
        return analysis
