"""Tests for the money request workflow."""

from decimal import Decimal
import asyncio
import pathlib
import sys

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from budget_app.models import User
from budget_app.crud import (
    create_user,
    create_household,
    enroll_child,
    get_child_settings,
    create_money_request,
    approve_money_request,
    reject_money_request,
    get_money_request,
    get_child_requests,
    get_parent_requests,
    get_user_notifications,
)
from budget_app.exceptions import InvalidRequestStateError


async def _setup():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    async with Session() as session:
        parent = await create_user(
            session, User(name="Parent", email="p@example.com", password_hash="pass")
        )
        household = await create_household(session, "Home", parent.id)
        settings = await enroll_child(
            session,
            household.id,
            User(name="Kid", email="kid@example.com", password_hash="kidpass"),
            parent.id,
        )
    return Session, household.id, parent.id, settings.user_id


def test_create_request_notifies_parent():
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            request_id = await create_money_request(
                session, household_id, child_id, parent_id, Decimal("25"), "Book", "school"
            )
            req = await get_money_request(session, request_id)
            assert req.status == "pending"
            assert req.category == "school"

            notes = await get_user_notifications(session, parent_id)
            assert len(notes) == 1
            note = notes[0]
            assert note.notification_type == "approval"
            assert note.priority == "high"
            assert note.message == "Kid requested 25.00 CZK for: Book"
            assert note.action_url == f"/child-account/money-request/{request_id}"
            assert note.action_label == "Review"

    asyncio.run(run())


def test_approve_credits_exactly_once():
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            request_id = await create_money_request(
                session, household_id, child_id, parent_id, Decimal("25"), "Book"
            )
            assert await approve_money_request(session, request_id, parent_id, "Enjoy")
            settings = await get_child_settings(session, child_id, household_id)
            assert settings.current_balance == Decimal("25")

            req = await get_money_request(session, request_id)
            assert req.status == "approved"
            assert req.reviewed_by == parent_id
            assert req.reviewed_at is not None
            assert req.review_notes == "Enjoy"

            with pytest.raises(InvalidRequestStateError) as exc:
                await approve_money_request(session, request_id, parent_id)
            assert exc.value.message == "Invalid or already processed request"
            with pytest.raises(InvalidRequestStateError):
                await reject_money_request(session, request_id, parent_id)

            settings = await get_child_settings(session, child_id, household_id)
            assert settings.current_balance == Decimal("25")
            req = await get_money_request(session, request_id)
            assert req.status == "approved"

            child_notes = await get_user_notifications(session, child_id)
            assert [n.title for n in child_notes] == ["Money Request Approved"]
            assert child_notes[0].priority == "normal"

    asyncio.run(run())


def test_reject_leaves_balance_and_appends_notes():
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            request_id = await create_money_request(
                session, household_id, child_id, parent_id, Decimal("10"), "Game"
            )
            assert await reject_money_request(session, request_id, parent_id, "Not now")
            settings = await get_child_settings(session, child_id, household_id)
            assert settings.current_balance == Decimal("0")

            with pytest.raises(InvalidRequestStateError):
                await approve_money_request(session, request_id, parent_id)
            settings = await get_child_settings(session, child_id, household_id)
            assert settings.current_balance == Decimal("0")

            notes = await get_user_notifications(session, child_id)
            assert notes[0].title == "Money Request Denied"
            assert notes[0].message == "Your request for 10.00 CZK was denied. Not now"

    asyncio.run(run())


def test_missing_request_is_a_state_conflict():
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            with pytest.raises(InvalidRequestStateError):
                await approve_money_request(session, 404, parent_id)
            with pytest.raises(InvalidRequestStateError):
                await reject_money_request(session, 404, parent_id)

    asyncio.run(run())


def test_request_listings():
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            first = await create_money_request(
                session, household_id, child_id, parent_id, Decimal("5"), "Gum"
            )
            second = await create_money_request(
                session, household_id, child_id, parent_id, Decimal("7"), "Card"
            )
            await approve_money_request(session, first, parent_id)

            mine = await get_child_requests(session, child_id)
            assert [r.id for r in mine] == [second, first]
            pending = await get_child_requests(session, child_id, "pending")
            assert [r.id for r in pending] == [second]

            rows = await get_parent_requests(session, parent_id)
            assert [(r.id, name) for r, name in rows] == [(second, "Kid")]
            rows = await get_parent_requests(session, parent_id, "approved")
            assert [r.id for r, _ in rows] == [first]

    asyncio.run(run())
