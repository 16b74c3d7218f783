"""API tests for households, child enrollment and the spending endpoints."""

import asyncio
import pathlib
import sys

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel

# Allow importing the app package
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from budget_app.main import app
from budget_app.database import get_session
from budget_app.models import User
from budget_app.auth import get_password_hash
from budget_app.crud import ensure_permissions_exist
from budget_app.acl import ALL_PERMISSIONS


async def _setup_test_db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    TestSession = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_session():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    async with TestSession() as session:
        await ensure_permissions_exist(session, ALL_PERMISSIONS)
        session.add(
            User(
                name="Admin",
                email="admin@example.com",
                password_hash=get_password_hash("adminpass"),
                role="admin",
            )
        )
        await session.commit()

    return TestSession


async def _register_and_login(client, name, email, password):
    resp = await client.post(
        "/register", json={"name": name, "email": email, "password": password}
    )
    assert resp.status_code == 200
    return await _login(client, email, password)


async def _login(client, email, password):
    resp = await client.post("/login", json={"email": email, "password": password})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def test_household_enrollment_and_spending_flow():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            parent = await _register_and_login(
                client, "Parent", "parent@example.com", "parentpass"
            )
            resp = await client.get("/users/me", headers=parent)
            assert resp.json()["role"] == "parent"
            assert "spend" not in resp.json()["permissions"]

            resp = await client.post(
                "/households/", headers=parent, json={"name": "Home"}
            )
            assert resp.status_code == 200
            household_id = resp.json()["household"]["id"]

            resp = await client.post(
                f"/households/{household_id}/children",
                headers=parent,
                json={
                    "name": "Kid",
                    "email": "kid@example.com",
                    "password": "kidpass",
                    "daily_limit": 10,
                },
            )
            assert resp.status_code == 200
            child = resp.json()["child"]
            child_id = child["user_id"]
            assert child["current_balance"] == 0
            assert child["weekly_limit"] == 50

            resp = await client.post(
                f"/child-account/{household_id}/children/{child_id}/deposit",
                headers=parent,
                json={"amount": 13, "memo": "Birthday"},
            )
            assert resp.status_code == 200
            assert resp.json()["settings"]["current_balance"] == 13

            kid = await _login(client, "kid@example.com", "kidpass")
            resp = await client.post(
                f"/child-account/{household_id}/spend",
                headers=kid,
                json={"amount": 8, "memo": "Snacks"},
            )
            assert resp.status_code == 200
            assert resp.json() == {"success": True, "balance": 5.0}

            resp = await client.post(
                f"/child-account/{household_id}/spend/check",
                headers=kid,
                json={"amount": 3},
            )
            data = resp.json()
            assert data["success"] is True
            assert data["allowed"] is False
            assert data["checks"]["balance"] is True
            assert data["reason"] == "Daily spending limit reached."

            resp = await client.post(
                f"/child-account/{household_id}/spend",
                headers=kid,
                json={"amount": 3},
            )
            assert resp.status_code == 400
            assert resp.json() == {
                "success": False,
                "error": "Daily spending limit reached.",
            }

            resp = await client.post(
                f"/child-account/{household_id}/spend/check",
                headers=kid,
                json={"amount": 6},
            )
            assert resp.json()["reason"] == (
                "Insufficient balance. You need 1.00 CZK more."
            )

            # Removing the daily ceiling lets the spend through
            resp = await client.put(
                f"/child-account/{household_id}/children/{child_id}/limits",
                headers=parent,
                json={"daily_limit": None},
            )
            assert resp.status_code == 200
            assert resp.json()["settings"]["daily_limit"] is None
            resp = await client.post(
                f"/child-account/{household_id}/spend",
                headers=kid,
                json={"amount": 3},
            )
            assert resp.status_code == 200
            assert resp.json()["balance"] == 2.0

            resp = await client.get(
                f"/child-account/{household_id}/children/{child_id}/ledger",
                headers=kid,
            )
            entries = resp.json()["entries"]
            assert [(e["type"], e["source"]) for e in entries] == [
                ("debit", "spend"),
                ("debit", "spend"),
                ("credit", "deposit"),
            ]

            resp = await client.get(
                f"/child-account/{household_id}/snapshot", headers=kid
            )
            assert resp.json()["snapshot"]["daily_spent"] == 11.0

            # The child received a notification for the deposit
            resp = await client.get("/notifications/", headers=kid)
            titles = [n["title"] for n in resp.json()["notifications"]]
            assert titles == ["Money Added"]

    asyncio.run(run())


def test_outsiders_and_children_are_kept_out():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            parent = await _register_and_login(
                client, "Parent", "parent@example.com", "parentpass"
            )
            outsider = await _register_and_login(
                client, "Other", "other@example.com", "otherpass"
            )
            resp = await client.post(
                "/households/", headers=parent, json={"name": "Home"}
            )
            household_id = resp.json()["household"]["id"]
            resp = await client.post(
                f"/households/{household_id}/children",
                headers=parent,
                json={"name": "Kid", "email": "kid@example.com", "password": "kidpass"},
            )
            child_id = resp.json()["child"]["user_id"]
            kid = await _login(client, "kid@example.com", "kidpass")

            resp = await client.get(
                f"/child-account/{household_id}/children", headers=outsider
            )
            assert resp.status_code == 404
            assert resp.json() == {"success": False, "error": "Household not found"}

            resp = await client.post(
                f"/child-account/{household_id}/children/{child_id}/deposit",
                headers=kid,
                json={"amount": 100},
            )
            assert resp.status_code == 403

            resp = await client.post(
                f"/child-account/{household_id}/spend",
                headers=parent,
                json={"amount": 1},
            )
            assert resp.status_code == 403

            resp = await client.post(
                f"/child-account/{household_id}/spend",
                headers=kid,
                json={"amount": -1},
            )
            assert resp.status_code == 422
            assert resp.json()["success"] is False

            # The owner adds the outsider as a partner
            resp = await client.post(
                f"/households/{household_id}/members",
                headers=parent,
                json={"email": "other@example.com"},
            )
            assert resp.status_code == 200
            resp = await client.get(
                f"/households/{household_id}/members", headers=outsider
            )
            roles = {m["name"]: m["role"] for m in resp.json()["members"]}
            assert roles == {"Parent": "owner", "Other": "partner", "Kid": "child"}
            resp = await client.get("/notifications/", headers=outsider)
            assert resp.json()["notifications"][0]["notification_type"] == "invitation"

    asyncio.run(run())
