import time
from datetime import date, timedelta

import httpx
import pytest
from fastapi import HTTPException

from app.domain.vehicles import dvla_service as dvla_module
from app.domain.vehicles.dvla_service import DvlaService, dvla_service, map_upstream_error
from app.domain.vehicles.service import merge_vehicle_fields, parse_mot_test
from app.models import MotReport, ServiceType, Vehicle
from app.services import geocoding

from .factories import auth_headers, make_garage, make_service, make_user, make_vehicle

NEXT_EXPIRY = date.today() + timedelta(days=200)


def mot_history(expiry: date = NEXT_EXPIRY, test_number: str = "900000000001") -> dict:
    return {
        "registration": "AB12CDE",
        "make": "FORD",
        "model": "FOCUS",
        "primaryColour": "Blue",
        "fuelType": "Petrol",
        "manufactureDate": "2012-03-01",
        "engineSize": "1596",
        "motTests": [
            {
                "motTestNumber": test_number,
                "completedDate": "2025-03-01T10:15:00.000Z",
                "expiryDate": expiry.isoformat(),
                "testResult": "PASSED",
                "odometerValue": "84512",
                "odometerUnit": "MI",
                "odometerResultType": "READ",
                "defects": [{"type": "ADVISORY", "text": "Tyre worn close to legal limit", "dangerous": False}],
            }
        ],
    }


DVLA_DETAILS = {"make": "FORD", "colour": "BLUE", "yearOfManufacture": 2012, "co2Emissions": 128}


@pytest.fixture
def registries(monkeypatch):
    """Serve registry lookups from canned data"""
    calls = []

    async def fake_complete(registration):
        calls.append(registration)
        return {"registration_number": registration, "dvla_data": DVLA_DETAILS, "mot_data": mot_history()}

    monkeypatch.setattr(dvla_service, "get_complete_vehicle_data", fake_complete)
    return calls


@pytest.fixture
def postcodes(monkeypatch):
    lookups = []

    async def fake_fetch(postcode):
        lookups.append(postcode)
        return {"postcode": "SW1A 2AA", "latitude": 51.5035, "longitude": -0.1276, "outcode": "SW1A"}

    monkeypatch.setattr(geocoding, "fetch_postcode", fake_fetch)
    return lookups


# ============================================================================
# REGISTRY DATA
# ============================================================================


@pytest.mark.parametrize("registration", ["AB12CDE", "ab12 cde", "A1", "ABCDEFGHI", "12ABCDE"])
def test_registration_validation(registration):
    if registration in ("AB12CDE", "ab12 cde"):
        assert DvlaService.validate_registration_number(registration) == "AB12CDE"
    else:
        with pytest.raises(HTTPException) as exc:
            DvlaService.validate_registration_number(registration)
        assert exc.value.status_code == 400


@pytest.mark.parametrize(
    "status_code,expected_status,detail",
    [
        (404, 404, "Vehicle not found in DVLA database: AB12CDE"),
        (400, 400, "Invalid request to DVLA API: bad"),
        (401, 500, "DVLA API authentication failed"),
        (429, 500, "DVLA API rate limit exceeded"),
        (503, 500, "DVLA API service temporarily unavailable"),
        (418, 500, "DVLA API error: bad"),
    ],
)
def test_upstream_errors_are_mapped(status_code, expected_status, detail):
    error = map_upstream_error("DVLA", status_code, "bad", "AB12CDE")
    assert error.status_code == expected_status
    assert error.detail == detail


def test_mot_history_wins_over_dvla_fields():
    today = date.today()
    fields = merge_vehicle_fields("AB12CDE", DVLA_DETAILS, mot_history(), today)

    assert fields["color"] == "Blue"
    assert fields["model"] == "FOCUS"
    assert fields["year_of_manufacture"] == 2012
    assert fields["engine_capacity"] == 1596
    assert fields["co2_emissions"] == 128
    assert fields["mot_expiry_date"] == NEXT_EXPIRY
    assert fields["is_expired"] is False


def test_dvla_expiry_is_used_without_mot_history():
    fields = merge_vehicle_fields("AB12CDE", {"motExpiryDate": "2020-01-31"}, None, date(2024, 1, 1))
    assert fields["mot_expiry_date"] == date(2020, 1, 31)
    assert fields["is_expired"] is True


def test_mot_test_is_mapped_to_report():
    report, defects = parse_mot_test(mot_history()["motTests"][0])
    assert report["test_number"] == "900000000001"
    assert report["status"] == "PASSED"
    assert report["odometer_value"] == 84512
    assert report["test_date"].hour == 10
    assert defects == [{"type": "ADVISORY", "text": "Tyre worn close to legal limit", "dangerous": False}]


class TokenEndpoint:
    """Stands in for httpx.AsyncClient and counts token requests"""

    requests = []

    def __init__(self, *args, **kwargs):
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def post(self, url, data=None, **kwargs):
        TokenEndpoint.requests.append(url)
        token = f"token-{len(TokenEndpoint.requests)}"
        return httpx.Response(
            200, json={"access_token": token, "expires_in": 3600}, request=httpx.Request("POST", url)
        )


@pytest.fixture
def token_endpoint(monkeypatch):
    TokenEndpoint.requests = []
    monkeypatch.setattr(dvla_module, "DVSA_CLIENT_ID", "client-id")
    monkeypatch.setattr(dvla_module, "DVSA_CLIENT_SECRET", "client-secret")
    monkeypatch.setattr(dvla_module.httpx, "AsyncClient", TokenEndpoint)
    return TokenEndpoint.requests


async def test_dvsa_token_is_reused_while_valid(token_endpoint):
    service = DvlaService()

    first = await service._get_access_token()
    second = await service._get_access_token()

    assert first == second == "token-1"
    assert token_endpoint == [dvla_module.DVSA_TOKEN_URL]


async def test_dvsa_token_is_refreshed_five_minutes_before_expiry(token_endpoint):
    service = DvlaService()
    await service._get_access_token()

    service._token_expires_at = time.monotonic() + 301
    assert await service._get_access_token() == "token-1"

    service._token_expires_at = time.monotonic() + 299
    assert await service._get_access_token() == "token-2"
    assert len(token_endpoint) == 2


# ============================================================================
# DRIVER VEHICLES
# ============================================================================


def test_add_vehicle_stores_mot_reports(client, db, driver, registries):
    response = client.post("/vehicles", json={"registration_number": "ab12 cde"}, headers=auth_headers(driver))

    assert response.status_code == 201
    body = response.json()
    assert body["registration_number"] == "AB12CDE"
    assert body["mot_expiry_date"] == NEXT_EXPIRY.isoformat()
    assert body["mot_reports"][0]["defects"][0]["type"] == "ADVISORY"
    assert registries == ["AB12CDE"]


def test_vehicle_registered_twice_conflicts(client, db, driver, registries):
    headers = auth_headers(driver)
    client.post("/vehicles", json={"registration_number": "AB12CDE"}, headers=headers)

    response = client.post("/vehicles", json={"registration_number": "AB12CDE"}, headers=headers)
    assert response.status_code == 409
    assert "already exists for this user" in response.json()["detail"]


def test_vehicle_owned_by_someone_else_conflicts(client, db, driver, registries):
    make_vehicle(db, make_user(db))

    response = client.post("/vehicles", json={"registration_number": "AB12CDE"}, headers=auth_headers(driver))
    assert response.status_code == 409
    assert "registered by another user" in response.json()["detail"]
    assert registries == []


def test_other_drivers_vehicle_is_not_found(client, db, driver):
    vehicle = make_vehicle(db, make_user(db))
    response = client.get(f"/vehicles/{vehicle.id}", headers=auth_headers(driver))
    assert response.status_code == 404


def test_update_and_delete_vehicle(client, db, driver):
    vehicle = make_vehicle(db, driver)
    headers = auth_headers(driver)

    updated = client.patch(f"/vehicles/{vehicle.id}", json={"color": "RED"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["color"] == "RED"

    deleted = client.delete(f"/vehicles/{vehicle.id}", headers=headers)
    assert deleted.json()["success"] is True
    assert db.query(Vehicle).count() == 0


def test_refresh_mot_adds_only_new_tests(client, db, driver, monkeypatch):
    vehicle = make_vehicle(db, driver)
    later_expiry = NEXT_EXPIRY + timedelta(days=365)
    history = mot_history()
    history["motTests"].append(mot_history(later_expiry, "900000000002")["motTests"][0])

    async def fake_history(registration):
        return history

    monkeypatch.setattr(dvla_service, "get_mot_history", fake_history)
    headers = auth_headers(driver)

    first = client.post(f"/vehicles/{vehicle.id}/refresh-mot", headers=headers)
    assert first.json()["data"] == {"new_records": 2, "latest_expiry": later_expiry.isoformat()}

    second = client.post(f"/vehicles/{vehicle.id}/refresh-mot", headers=headers)
    assert second.json()["message"] == "MOT history is already up to date"
    assert db.query(MotReport).count() == 2


# ============================================================================
# GARAGE SEARCH
# ============================================================================


def test_search_returns_nearby_visible_garages(client, db, driver, garage, registries, postcodes):
    make_service(db, garage, ServiceType.MOT, 54.85)
    make_service(db, garage, ServiceType.RETEST, 27.50)
    make_garage(db, email="far@example.com", garage_name="Northern MOT", latitude=53.4808, longitude=-2.2426)
    make_garage(db, email="lapsed@example.com", garage_name="Lapsed MOT", has_subscription=False)

    response = client.post(
        "/vehicles/search-garages",
        json={"registration_number": "AB12CDE", "postcode": "sw1a 2aa", "radius_miles": 10},
        headers=auth_headers(driver),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["search_postcode"] == "SW1A 2AA"
    assert [g["garage_name"] for g in body["garages"]] == ["Kwik MOT Centre"]
    assert body["garages"][0]["mot_price"] == 54.85
    assert body["garages"][0]["distance_miles"] < 2
    assert body["vehicle"]["registration_number"] == "AB12CDE"


def test_search_with_someone_elses_vehicle_conflicts(client, db, driver, garage, postcodes):
    make_vehicle(db, make_user(db))
    response = client.post(
        "/vehicles/search-garages",
        json={"registration_number": "AB12CDE", "postcode": "SW1A 2AA"},
        headers=auth_headers(driver),
    )
    assert response.status_code == 409
    assert postcodes == []


def test_garage_services_split_additionals(client, db, driver, garage):
    make_service(db, garage, ServiceType.MOT, 54.85)
    make_service(db, garage, ServiceType.ADDITIONAL, 0, name="Free coffee")

    response = client.get(f"/vehicles/garages/{garage.id}/services", headers=auth_headers(driver))
    body = response.json()
    assert [s["type"] for s in body["services"]] == ["MOT"]
    assert body["additionals"][0]["name"] == "Free coffee"
