"""Registration, login, profile and property management endpoints."""
import pytest

import app.routers.auth as auth_router
from conftest import PASSWORD, auth_headers
from app.core.security import create_refresh_token, decode_token

API = "/api/v1"


@pytest.fixture
def no_redis(monkeypatch):
    """Login lockout bookkeeping lives in Redis; stub it out."""
    failures: list[str] = []

    async def record(email):
        failures.append(email)
        return len(failures)

    async def locked(email):
        return False

    async def clear(email):
        failures.clear()

    monkeypatch.setattr(auth_router, "record_login_failure", record)
    monkeypatch.setattr(auth_router, "is_locked_out", locked)
    monkeypatch.setattr(auth_router, "clear_login_failures", clear)
    return failures


class TestAuth:
    async def test_register_then_login(self, client, no_redis):
        registered = await client.post(f"{API}/auth/register", json={
            "email": "New.Tenant@Example.com",
            "password": PASSWORD,
            "first_name": "New",
            "last_name": "Tenant",
            "role": "TENANT",
        })
        assert registered.status_code == 201
        assert registered.json()["email"] == "new.tenant@example.com"
        assert registered.json()["role"] == "TENANT"

        login = await client.post(f"{API}/auth/login", json={
            "email": "new.tenant@example.com", "password": PASSWORD,
        })
        assert login.status_code == 200
        body = login.json()
        assert body["user"]["full_name"] == "New Tenant"
        assert decode_token(body["token"])["sub"] == body["user"]["id"]
        assert "access_token" in login.cookies

        me = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.json()["id"] == body["user"]["id"]

    async def test_duplicate_email(self, client, tenant):
        resp = await client.post(f"{API}/auth/register", json={
            "email": tenant.email, "password": PASSWORD,
            "first_name": "Dup", "last_name": "User", "role": "TENANT",
        })
        assert resp.status_code == 409

    async def test_weak_password(self, client):
        resp = await client.post(f"{API}/auth/register", json={
            "email": "weak@example.com", "password": "short",
            "first_name": "Weak", "last_name": "User", "role": "LANDLORD",
        })
        assert resp.status_code == 422

    async def test_wrong_password_records_failure(self, client, tenant, no_redis):
        resp = await client.post(f"{API}/auth/login", json={"email": tenant.email, "password": "nope"})
        assert resp.status_code == 401
        assert no_redis == [tenant.email]

    async def test_refresh_token_is_not_an_access_token(self, client, tenant):
        token = create_refresh_token({"sub": str(tenant.id)})
        resp = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


class TestProfile:
    async def test_update_profile_keeps_role(self, client, tenant):
        resp = await client.patch(
            f"{API}/users/me", json={"first_name": "Thomas", "role": "LANDLORD"}, headers=auth_headers(tenant)
        )
        assert resp.status_code == 200
        assert resp.json()["first_name"] == "Thomas"
        assert resp.json()["role"] == "TENANT"


class TestProperties:
    async def test_property_unit_and_tenant_lifecycle(self, client, landlord, tenant):
        prop = await client.post(
            f"{API}/properties", json={"name": "Oak Flats", "address": "1 Oak St"}, headers=auth_headers(landlord)
        )
        assert prop.status_code == 201
        prop_id = prop.json()["id"]

        unit = await client.post(
            f"{API}/properties/{prop_id}/units",
            json={"unit_number": "101", "rent": "900.00", "tenant_email": tenant.email},
            headers=auth_headers(landlord),
        )
        assert unit.status_code == 201
        assert unit.json()["tenant_id"] == str(tenant.id)

        tenants = await client.get(f"{API}/tenants", headers=auth_headers(landlord))
        assert [t["unit_number"] for t in tenants.json()] == ["101"]

        blocked = await client.delete(f"{API}/properties/{prop_id}", headers=auth_headers(landlord))
        assert blocked.status_code == 409
        assert blocked.json()["code"] == "INVALID_STATE"

        vacated = await client.put(
            f"{API}/units/{unit.json()['id']}/tenant", json={"tenant_email": None}, headers=auth_headers(landlord)
        )
        assert vacated.json()["tenant_id"] is None

        assert (await client.delete(f"{API}/units/{unit.json()['id']}", headers=auth_headers(landlord))).status_code == 204
        assert (await client.delete(f"{API}/properties/{prop_id}", headers=auth_headers(landlord))).status_code == 204

    async def test_assigning_a_landlord_as_tenant(self, client, building, landlord, other_landlord):
        resp = await client.post(
            f"{API}/properties/{building.id}/units",
            json={"unit_number": "X", "rent": "100.00", "tenant_email": other_landlord.email},
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 422

    async def test_tenant_cannot_manage_properties(self, client, tenant):
        resp = await client.get(f"{API}/properties", headers=auth_headers(tenant))
        assert resp.status_code == 403

    async def test_other_landlords_property_is_hidden(self, client, building, other_landlord):
        resp = await client.get(f"{API}/properties/{building.id}", headers=auth_headers(other_landlord))
        assert resp.status_code == 404

    async def test_null_on_required_unit_field_is_refused(self, client, unit, landlord):
        resp = await client.patch(f"{API}/units/{unit.id}", json={"rent": None}, headers=auth_headers(landlord))
        assert resp.status_code == 422
        assert resp.json() == {"detail": "rent cannot be null", "code": "VALIDATION_ERROR"}

        cleared = await client.patch(
            f"{API}/units/{unit.id}", json={"square_feet": None, "rent": "1250.00"}, headers=auth_headers(landlord)
        )
        assert cleared.status_code == 200
        assert cleared.json()["rent"] == "1250.00"
        assert cleared.json()["square_feet"] is None

    async def test_null_on_required_property_field_is_refused(self, client, building, landlord):
        resp = await client.patch(
            f"{API}/properties/{building.id}", json={"name": None}, headers=auth_headers(landlord)
        )
        assert resp.status_code == 422
        assert resp.json()["code"] == "VALIDATION_ERROR"

        cleared = await client.patch(
            f"{API}/properties/{building.id}", json={"city": None}, headers=auth_headers(landlord)
        )
        assert cleared.status_code == 200
        assert cleared.json()["city"] is None
        assert cleared.json()["name"] == building.name
