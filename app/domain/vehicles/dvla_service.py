"""DVLA / DVSA service - Vehicle enquiry and MOT history lookups"""

import asyncio
import logging
import time
from typing import Optional

import httpx
from fastapi import HTTPException

from ...config import (
    DVLA_API_KEY,
    DVLA_API_URL,
    DVSA_API_KEY,
    DVSA_API_URL,
    DVSA_CLIENT_ID,
    DVSA_CLIENT_SECRET,
    DVSA_SCOPE,
    DVSA_TOKEN_URL,
)
from ...shared.validators import is_valid_registration, normalize_registration

logger = logging.getLogger(__name__)

DVLA_TIMEOUT = 10.0
DVSA_TIMEOUT = 15.0
TOKEN_REFRESH_MARGIN = 300  # seconds before expiry


def map_upstream_error(source: str, status_code: Optional[int], message: str, registration: str) -> HTTPException:
    """Translate an upstream status into the error returned to the client"""
    if status_code == 404:
        return HTTPException(status_code=404, detail=f"Vehicle not found in {source} database: {registration}")
    if status_code == 400:
        return HTTPException(status_code=400, detail=f"Invalid request to {source} API: {message}")
    if status_code == 401:
        return HTTPException(status_code=500, detail=f"{source} API authentication failed")
    if status_code == 403:
        return HTTPException(status_code=500, detail=f"{source} API access forbidden")
    if status_code == 429:
        return HTTPException(status_code=500, detail=f"{source} API rate limit exceeded")
    if status_code in (500, 502, 503):
        return HTTPException(status_code=500, detail=f"{source} API service temporarily unavailable")
    return HTTPException(status_code=500, detail=f"{source} API error: {message}")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase


class DvlaService:
    """
    Client for the DVLA Vehicle Enquiry API and the DVSA MOT History API.

    The DVSA API uses an OAuth client-credentials token, cached on the
    instance and refreshed five minutes before it expires.
    """

    def __init__(self):
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0
        self._token_lock = asyncio.Lock()

    @staticmethod
    def validate_registration_number(registration: str) -> str:
        normalized = normalize_registration(registration or "")
        if not is_valid_registration(normalized):
            raise HTTPException(status_code=400, detail="Invalid registration number format")
        return normalized

    async def get_vehicle_details(self, registration: str) -> dict:
        registration = self.validate_registration_number(registration)
        if not DVLA_API_KEY:
            raise HTTPException(status_code=500, detail="DVLA API is not configured")

        try:
            async with httpx.AsyncClient(timeout=DVLA_TIMEOUT) as client:
                response = await client.post(
                    DVLA_API_URL,
                    json={"registrationNumber": registration},
                    headers={"x-api-key": DVLA_API_KEY, "Content-Type": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ DVLA request failed for {registration}: {e}")
            raise HTTPException(status_code=500, detail=f"Unexpected error accessing DVLA API: {e}") from e

        if response.status_code != 200:
            raise map_upstream_error("DVLA", response.status_code, _error_message(response), registration)

        logger.info(f"✅ DVLA vehicle details retrieved for {registration}")
        return response.json()

    async def _get_access_token(self) -> str:
        async with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at - TOKEN_REFRESH_MARGIN:
                return self._token

            if not DVSA_CLIENT_ID or not DVSA_CLIENT_SECRET:
                raise HTTPException(status_code=500, detail="MOT API is not configured")

            logger.info("🔑 Refreshing DVSA MOT API access token")
            try:
                async with httpx.AsyncClient(timeout=DVLA_TIMEOUT) as client:
                    response = await client.post(
                        DVSA_TOKEN_URL,
                        data={
                            "client_id": DVSA_CLIENT_ID,
                            "client_secret": DVSA_CLIENT_SECRET,
                            "scope": DVSA_SCOPE,
                            "grant_type": "client_credentials",
                        },
                    )
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"❌ DVSA token request failed: {e}")
                raise HTTPException(status_code=500, detail="Unable to authenticate with MOT API") from e

            self._token = payload["access_token"]
            self._token_expires_at = time.monotonic() + int(payload.get("expires_in", 3600))
            return self._token

    async def get_mot_history(self, registration: str) -> dict:
        registration = self.validate_registration_number(registration)
        token = await self._get_access_token()

        try:
            async with httpx.AsyncClient(timeout=DVSA_TIMEOUT) as client:
                response = await client.get(
                    f"{DVSA_API_URL}/{registration}",
                    headers={
                        "x-api-key": DVSA_API_KEY or "",
                        "Authorization": f"Bearer {token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ MOT history request failed for {registration}: {e}")
            raise HTTPException(status_code=500, detail=f"Unexpected error accessing MOT API: {e}") from e

        if response.status_code == 401:
            # Force a fresh token on the next call
            self._token = None
        if response.status_code != 200:
            raise map_upstream_error("MOT", response.status_code, _error_message(response), registration)

        logger.info(f"✅ MOT history retrieved for {registration}")
        return response.json()

    async def get_complete_vehicle_data(self, registration: str) -> dict:
        """Fetch DVLA and MOT data concurrently; either side may be missing"""
        registration = self.validate_registration_number(registration)
        dvla_result, mot_result = await asyncio.gather(
            self.get_vehicle_details(registration),
            self.get_mot_history(registration),
            return_exceptions=True,
        )

        if isinstance(dvla_result, Exception):
            logger.warning(f"⚠️ DVLA lookup failed for {registration}: {dvla_result}")
            dvla_result = None
        if isinstance(mot_result, Exception):
            logger.warning(f"⚠️ MOT lookup failed for {registration}: {mot_result}")
            mot_result = None

        if not dvla_result and not mot_result:
            raise HTTPException(status_code=404, detail="Vehicle not found in any database")

        return {"registration_number": registration, "dvla_data": dvla_result, "mot_data": mot_result}


# Singleton instance
dvla_service = DvlaService()
