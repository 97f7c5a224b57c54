"""Azure Maps / Vision client tests against a fake aiohttp session."""

import base64

import aiohttp
import pytest

from safealert.config import Settings
from safealert.exceptions import ProviderError
from safealert.schemas.panic import Location
from safealert.utils.maps import AzureMapsClient, HOSPITAL_CATEGORY
from safealert.utils.vision import AzureVisionClient, decode_photo, map_analysis


NYC = Location(lat=40.7128, lng=-74.006)
PHOTO = "data:image/png;base64,aGVsbG8gd29ybGQ="


class FakeResponse:
    def __init__(self, status=200, payload=None, text=""):
        self.status = status
        self._payload = payload if payload is not None else {}
        self._text = text

    async def json(self):
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def _request(self, method, url, kwargs):
        self.requests.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._request("GET", url, kwargs)

    def post(self, url, **kwargs):
        return self._request("POST", url, kwargs)


def _settings(**overrides) -> Settings:
    values = dict(
        azure_maps_key="maps-key",
        azure_vision_endpoint="https://vision.example.com/",
        azure_vision_key="vision-key",
        provider_timeout_seconds=3,
    )
    values.update(overrides)
    return Settings(**values)


class TestAzureMapsClient:

    @pytest.mark.asyncio
    async def test_nearby_search_request_and_results(self):
        session = FakeSession(FakeResponse(payload={"results": [{"poi": {"name": "Mercy"}, "dist": 12.5}]}))
        client = AzureMapsClient(_settings(), session)

        results = await client.find_nearby_places(NYC, HOSPITAL_CATEGORY)

        assert results == [{"poi": {"name": "Mercy"}, "dist": 12.5}]
        method, url, kwargs = session.requests[0]
        assert method == "GET"
        assert url == "https://atlas.microsoft.com/search/nearby/json"
        assert kwargs["params"]["categorySet"] == "7321"
        assert kwargs["params"]["lat"] == "40.7128"
        assert kwargs["params"]["lon"] == "-74.006"
        assert kwargs["params"]["radius"] == "5000"
        assert kwargs["params"]["subscription-key"] == "maps-key"
        assert kwargs["timeout"].total == 3

    @pytest.mark.asyncio
    async def test_nearby_search_without_results(self):
        client = AzureMapsClient(_settings(), FakeSession(FakeResponse(payload={"summary": {}})))
        assert await client.find_nearby_places(NYC, HOSPITAL_CATEGORY) == []

    @pytest.mark.asyncio
    async def test_reverse_geocode_first_candidate(self):
        payload = {"addresses": [{"address": {"freeformAddress": "City Hall"}}, {"address": {}}]}
        session = FakeSession(FakeResponse(payload=payload))
        client = AzureMapsClient(_settings(), session)

        address = await client.reverse_geocode(NYC)

        assert address == {"address": {"freeformAddress": "City Hall"}}
        assert session.requests[0][2]["params"]["query"] == "40.7128,-74.006"

    @pytest.mark.asyncio
    async def test_reverse_geocode_no_candidate(self):
        client = AzureMapsClient(_settings(), FakeSession(FakeResponse(payload={"addresses": []})))
        assert await client.reverse_geocode(NYC) is None

    @pytest.mark.asyncio
    async def test_missing_key_is_an_error(self):
        session = FakeSession(FakeResponse())
        client = AzureMapsClient(_settings(azure_maps_key=None), session)

        with pytest.raises(ProviderError, match="not configured"):
            await client.reverse_geocode(NYC)
        assert session.requests == []

    @pytest.mark.asyncio
    async def test_non_2xx_is_an_error(self):
        client = AzureMapsClient(_settings(), FakeSession(FakeResponse(status=401, text="bad key")))

        with pytest.raises(ProviderError, match="401"):
            await client.find_nearby_places(NYC, HOSPITAL_CATEGORY)

    @pytest.mark.asyncio
    async def test_network_error_is_wrapped(self):
        client = AzureMapsClient(_settings(), FakeSession(error=aiohttp.ClientConnectionError("refused")))

        with pytest.raises(ProviderError, match="Network error"):
            await client.reverse_geocode(NYC)


class TestAzureVisionClient:

    @pytest.mark.asyncio
    async def test_analyze_posts_raw_bytes(self):
        payload = {
            "description": {"captions": [{"text": "a street at night", "confidence": 0.76}]},
            "objects": [{"object": "car", "confidence": 0.8, "rectangle": {"x": 0, "y": 0, "w": 5, "h": 5}}],
            "tags": [{"name": "outdoor", "confidence": 0.99}],
            "adult": {"isAdultContent": False, "isRacyContent": True},
        }
        session = FakeSession(FakeResponse(payload=payload))
        client = AzureVisionClient(_settings(), session)

        analysis = await client.analyze_image(PHOTO)

        method, url, kwargs = session.requests[0]
        assert method == "POST"
        assert url == "https://vision.example.com/vision/v3.2/analyze"
        assert kwargs["data"] == b"hello world"
        assert kwargs["headers"]["Ocp-Apim-Subscription-Key"] == "vision-key"
        assert kwargs["headers"]["Content-Type"] == "application/octet-stream"
        assert kwargs["params"]["visualFeatures"] == "Objects,Description,Tags,Adult"
        assert analysis["description"] == "a street at night"
        assert analysis["confidence"] == 0.76
        assert analysis["objects"] == [{"name": "car", "confidence": 0.8, "rectangle": {"x": 0, "y": 0, "w": 5, "h": 5}}]
        assert analysis["isRacyContent"] is True

    @pytest.mark.asyncio
    async def test_unconfigured_is_an_error(self):
        client = AzureVisionClient(_settings(azure_vision_key=None), FakeSession(FakeResponse()))

        with pytest.raises(ProviderError, match="not configured"):
            await client.analyze_image(PHOTO)

    @pytest.mark.asyncio
    async def test_non_2xx_is_an_error(self):
        client = AzureVisionClient(_settings(), FakeSession(FakeResponse(status=500, text="oops")))

        with pytest.raises(ProviderError, match="500"):
            await client.analyze_image(PHOTO)

    def test_map_analysis_defaults(self):
        analysis = map_analysis({})

        assert analysis == {
            "description": "No description available",
            "confidence": 0,
            "objects": [],
            "tags": [],
            "isAdultContent": False,
            "isRacyContent": False,
            "landmarks": [],
        }

    def test_map_analysis_collects_landmarks(self):
        analysis = map_analysis({
            "categories": [
                {"name": "building_", "detail": {"landmarks": [{"name": "Flatiron Building", "confidence": 0.9}]}},
                {"name": "outdoor_"},
            ]
        })
        assert analysis["landmarks"] == [{"name": "Flatiron Building", "confidence": 0.9}]

    def test_decode_photo(self):
        assert decode_photo(PHOTO) == b"hello world"
        assert decode_photo("aGVsbG8gd29ybGQ=") == b"hello world"
        with pytest.raises(ProviderError):
            decode_photo("data:image/png;base64,not base64!!")
        with pytest.raises(ProviderError):
            decode_photo("data:image/png;base64,")

    def test_decode_line_wrapped_photo(self):
        raw = bytes(range(256)) * 2
        wrapped = base64.encodebytes(raw).decode()
        assert "\n" in wrapped.strip()

        assert decode_photo("data:image/jpeg;base64," + wrapped) == raw
        assert decode_photo(wrapped.replace("\n", "\r\n")) == raw
