import pytest
from fastapi import HTTPException

from app.models import PostcodeGeoCache
from app.services import geocoding
from app.services.geocoding import get_lat_lng, haversine_miles


@pytest.fixture
def upstream(monkeypatch):
    lookups = []

    async def fake_fetch(postcode):
        lookups.append(postcode)
        return {"postcode": "M1 1AE", "latitude": 53.4808, "longitude": -2.2426, "outcode": "M1"}

    monkeypatch.setattr(geocoding, "fetch_postcode", fake_fetch)
    return lookups


def test_haversine_london_to_manchester():
    assert 160 < haversine_miles(51.5074, -0.1278, 53.4808, -2.2426) < 165
    assert haversine_miles(51.5, -0.1, 51.5, -0.1) == 0


async def test_lookup_is_cached_by_normalized_postcode(db, upstream):
    first = await get_lat_lng(db, "m1 1ae")
    second = await get_lat_lng(db, "M11AE")

    assert first["cached"] is False
    assert second["cached"] is True
    assert second["latitude"] == 53.4808
    assert second["postcode"] == "M1 1AE"
    assert upstream == ["m1 1ae"]
    assert db.query(PostcodeGeoCache).one().postcode_normalized == "M11AE"


async def test_blank_postcode_is_rejected(db, upstream):
    with pytest.raises(HTTPException) as exc:
        await get_lat_lng(db, "   ")
    assert exc.value.status_code == 400
    assert upstream == []
