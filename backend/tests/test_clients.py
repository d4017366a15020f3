"""
Tests for tracking client registration and validation.
"""
import re

import pytest

from client_registry import (
    authenticate_client,
    generate_client_id,
    list_clients,
    new_api_key,
    new_client_id,
    set_client_status,
    validate_client_id,
)
from db_models import Client, ClientStatus


class TestIdGeneration:

    def test_client_id_format(self):
        assert re.fullmatch(r"nlt_[A-Za-z0-9_-]{16}", new_client_id())

    def test_api_key_format(self):
        assert re.fullmatch(r"key_[A-Za-z0-9_-]{32}", new_api_key())

    def test_ids_are_random(self):
        assert len({new_client_id() for _ in range(50)}) == 50


class TestRegistry:

    def test_register_creates_active_client(self, db_session):
        client = generate_client_id(db_session, " Example.COM ", "Example", "Owner@Example.com", owner="admin")

        assert client.client_id.startswith("nlt_")
        assert client.api_key.startswith("key_")
        assert client.domain == "example.com"
        assert client.email == "owner@example.com"
        assert client.status == ClientStatus.ACTIVE

    def test_each_registration_gets_a_new_id(self, db_session):
        first = generate_client_id(db_session, "example.com", "Example", "a@example.com")
        second = generate_client_id(db_session, "example.com", "Example", "a@example.com")
        assert first.client_id != second.client_id
        assert db_session.query(Client).count() == 2

    def test_validate_only_active(self, db_session):
        client = generate_client_id(db_session, "example.com", "Example", "a@example.com")
        assert validate_client_id(db_session, client.client_id)

        set_client_status(db_session, client.client_id, ClientStatus.INACTIVE)
        assert not validate_client_id(db_session, client.client_id)
        assert not validate_client_id(db_session, "nlt_doesnotexist00")
        assert not validate_client_id(db_session, "")

    def test_authenticate(self, db_session):
        client = generate_client_id(db_session, "example.com", "Example", "a@example.com")
        assert authenticate_client(db_session, client.client_id, client.api_key).id == client.id
        assert authenticate_client(db_session, client.client_id, "key_nope") is None

    def test_list_filters(self, db_session):
        mine = generate_client_id(db_session, "a.com", "A", "a@a.com", owner="alice")
        generate_client_id(db_session, "b.com", "B", "b@b.com", owner="bob")
        set_client_status(db_session, mine.client_id, ClientStatus.SUSPENDED)

        assert [c.domain for c in list_clients(db_session, owner="alice")] == ["a.com"]
        assert [c.domain for c in list_clients(db_session, active_only=True)] == ["b.com"]


class TestClientsApi:

    @pytest.mark.asyncio
    async def test_register_requires_admin_secret(self, client):
        response = await client.post("/api/clients", json={
            "domain": "example.com", "name": "Example", "email": "a@example.com",
        })
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_register_and_validate(self, client, admin_headers):
        response = await client.post("/api/clients", headers=admin_headers, json={
            "domain": "example.com", "name": "Example", "email": "a@example.com",
        })
        assert response.status_code == 200
        client_id = response.json()["client_id"]
        assert response.json()["api_key"].startswith("key_")

        response = await client.get(f"/api/clients/{client_id}/validate")
        assert response.json() == {"client_id": client_id, "valid": True}

    @pytest.mark.asyncio
    async def test_register_rejects_bad_email(self, client, admin_headers):
        response = await client.post("/api/clients", headers=admin_headers, json={
            "domain": "example.com", "name": "Example", "email": "not-an-email",
        })
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_secret_query_parameter_accepted(self, client, db_session):
        generate_client_id(db_session, "example.com", "Example", "a@example.com")

        response = await client.get("/api/clients", params={"secret": "test-admin-secret"})
        assert response.status_code == 200
        assert len(response.json()) == 1

    @pytest.mark.asyncio
    async def test_status_update(self, client, admin_headers, db_session):
        registered = generate_client_id(db_session, "example.com", "Example", "a@example.com")

        response = await client.patch(
            f"/api/clients/{registered.client_id}/status",
            headers=admin_headers,
            json={"status": "suspended"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "suspended"

        response = await client.get(f"/api/clients/{registered.client_id}/validate")
        assert response.json()["valid"] is False

    @pytest.mark.asyncio
    async def test_status_update_unknown_client(self, client, admin_headers):
        response = await client.patch(
            "/api/clients/nlt_missing/status",
            headers=admin_headers,
            json={"status": "active"},
        )
        assert response.status_code == 404
