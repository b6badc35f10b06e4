"""Postcode geocoding backed by postcodes.io with a database cache.

Garage coordinates and driver search origins both come from here, so every
postcode is looked up upstream at most once.
"""

import logging
import math
from urllib.parse import quote

import httpx
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import POSTCODES_IO_URL
from ..models import PostcodeGeoCache
from ..shared.validators import normalize_postcode

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8
REQUEST_TIMEOUT = 10.0


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in miles"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(a))


async def fetch_postcode(postcode: str) -> dict:
    """Look a postcode up on postcodes.io, raising 400 when it is unknown"""
    url = f"{POSTCODES_IO_URL}/{quote(postcode.strip())}"
    try:
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as client:
            response = await client.get(url)
    except httpx.HTTPError as e:
        logger.error(f"❌ postcodes.io request failed for {postcode}: {e}")
        raise HTTPException(status_code=503, detail="Postcode lookup is temporarily unavailable") from e

    if response.status_code != 200:
        logger.warning(f"⚠️ postcodes.io returned {response.status_code} for {postcode}")
        raise HTTPException(status_code=400, detail="Invalid postcode")

    result = (response.json() or {}).get("result") or {}
    if result.get("latitude") is None or result.get("longitude") is None:
        raise HTTPException(status_code=400, detail="Invalid postcode")
    return result


async def get_lat_lng(db: Session, postcode: str) -> dict:
    """
    Resolve a UK postcode to coordinates.

    Returns:
        {"postcode", "latitude", "longitude", "outcode", "cached"}
    """
    normalized = normalize_postcode(postcode)
    if not normalized:
        raise HTTPException(status_code=400, detail="Invalid postcode")

    cached = db.query(PostcodeGeoCache).filter(PostcodeGeoCache.postcode_normalized == normalized).first()
    if cached:
        logger.debug(f"✅ Postcode cache HIT: {normalized}")
        return {
            "postcode": cached.postcode_display or normalized,
            "latitude": cached.latitude,
            "longitude": cached.longitude,
            "outcode": cached.outcode,
            "cached": True,
        }

    result = await fetch_postcode(postcode)
    latitude = float(result["latitude"])
    longitude = float(result["longitude"])
    display = result.get("postcode") or normalized
    outcode = result.get("outcode")

    entry = PostcodeGeoCache(
        postcode_normalized=normalized,
        postcode_display=display,
        latitude=latitude,
        longitude=longitude,
        outcode=outcode,
        source="postcodes.io",
    )
    db.add(entry)
    try:
        db.commit()
        logger.info(f"✅ Cached coordinates for {display}")
    except IntegrityError:
        # Another request cached it first; refresh the existing row instead
        db.rollback()
        db.query(PostcodeGeoCache).filter(PostcodeGeoCache.postcode_normalized == normalized).update(
            {
                PostcodeGeoCache.latitude: latitude,
                PostcodeGeoCache.longitude: longitude,
                PostcodeGeoCache.outcode: outcode,
                PostcodeGeoCache.postcode_display: display,
            },
            synchronize_session=False,
        )
        db.commit()

    return {
        "postcode": display,
        "latitude": latitude,
        "longitude": longitude,
        "outcode": outcode,
        "cached": False,
    }
