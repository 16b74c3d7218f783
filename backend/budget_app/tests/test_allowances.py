"""Tests for allowance scheduling and the daily payment tick."""

from datetime import date, datetime
from decimal import Decimal
import asyncio
import pathlib
import sys

from sqlalchemy import update
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from budget_app import crud
from budget_app.models import User, Allowance, ChoreCompletion, Chore
from budget_app.crud import (
    create_user,
    create_household,
    enroll_child,
    create_chore,
    create_allowance,
    get_allowance,
    update_allowance,
    get_allowance_payments,
    get_child_allowances,
    get_child_settings,
    get_user_notifications,
    process_allowance_payments,
)
from budget_app.schedule import calculate_next_payment_date

TODAY = date(2024, 3, 13)


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


async def _approved_completions(session, household_id, parent_id, child_id, days):
    chore = await create_chore(
        session,
        Chore(household_id=household_id, created_by=parent_id, title="Dishes"),
    )
    for day in days:
        session.add(
            ChoreCompletion(
                chore_id=chore.id,
                household_id=household_id,
                completed_by=child_id,
                completion_date=day,
                status="approved",
            )
        )
    await session.commit()


def test_insufficient_chores_skip_but_advance():
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            await _approved_completions(
                session, household_id, parent_id, child_id, [date(2024, 3, 5)]
            )
            allowance = await create_allowance(
                session,
                Allowance(
                    household_id=household_id,
                    child_user_id=child_id,
                    parent_user_id=parent_id,
                    amount=Decimal("50"),
                    frequency="weekly",
                    day_of_payment=3,
                    next_payment_date=TODAY,
                    requires_chores=True,
                    min_chores_required=3,
                ),
            )

            paid = await process_allowance_payments(session, TODAY)
            assert paid == 0

            payments = await get_allowance_payments(session, allowance.id)
            assert len(payments) == 1
            assert payments[0].status == "skipped"
            assert payments[0].skip_reason == "Insufficient chores completed"
            assert payments[0].scheduled_date == TODAY

            settings = await get_child_settings(session, child_id, household_id)
            assert settings.current_balance == Decimal("0")

            allowance = await get_allowance(session, allowance.id)
            assert allowance.next_payment_date == calculate_next_payment_date(
                "weekly", 3, TODAY
            )
            assert allowance.next_payment_date == date(2024, 3, 20)
            assert allowance.last_payment_date is None

    asyncio.run(run())


def test_chore_gate_counts_only_this_month():
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            await _approved_completions(
                session,
                household_id,
                parent_id,
                child_id,
                [date(2024, 2, 28), date(2024, 3, 1), date(2024, 3, 12)],
            )
            await create_allowance(
                session,
                Allowance(
                    household_id=household_id,
                    child_user_id=child_id,
                    parent_user_id=parent_id,
                    amount=Decimal("20"),
                    frequency="weekly",
                    day_of_payment=3,
                    next_payment_date=TODAY,
                    requires_chores=True,
                    min_chores_required=2,
                ),
            )
            assert await process_allowance_payments(session, TODAY) == 1
            settings = await get_child_settings(session, child_id, household_id)
            assert settings.current_balance == Decimal("20")

    asyncio.run(run())


def test_due_allowance_is_paid_and_notified():
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            due = await create_allowance(
                session,
                Allowance(
                    household_id=household_id,
                    child_user_id=child_id,
                    parent_user_id=parent_id,
                    amount=Decimal("100"),
                    frequency="monthly",
                    day_of_payment=1,
                    next_payment_date=date(2024, 3, 1),
                ),
            )
            future = await create_allowance(
                session,
                Allowance(
                    household_id=household_id,
                    child_user_id=child_id,
                    parent_user_id=parent_id,
                    amount=Decimal("5"),
                    frequency="daily",
                    next_payment_date=date(2024, 3, 14),
                ),
            )
            stopped = await create_allowance(
                session,
                Allowance(
                    household_id=household_id,
                    child_user_id=child_id,
                    parent_user_id=parent_id,
                    amount=Decimal("7"),
                    frequency="daily",
                    next_payment_date=date(2024, 3, 1),
                    is_active=False,
                ),
            )

            assert await process_allowance_payments(session, TODAY) == 1

            settings = await get_child_settings(session, child_id, household_id)
            assert settings.current_balance == Decimal("100")
            due = await get_allowance(session, due.id)
            assert due.last_payment_date == TODAY
            assert due.next_payment_date == date(2024, 4, 1)
            payments = await get_allowance_payments(session, due.id)
            assert [p.status for p in payments] == ["completed"]
            assert payments[0].scheduled_date == date(2024, 3, 1)
            assert await get_allowance_payments(session, future.id) == []
            assert await get_allowance_payments(session, stopped.id) == []

            notes = await get_user_notifications(session, child_id)
            assert len(notes) == 1
            assert notes[0].title == "Allowance Received"
            assert notes[0].priority == "normal"
            assert notes[0].message == (
                "You received your monthly allowance of 100.00 CZK"
            )

            # A second run on the same day finds nothing due
            assert await process_allowance_payments(session, TODAY) == 0
            settings = await get_child_settings(session, child_id, household_id)
            assert settings.current_balance == Decimal("100")

    asyncio.run(run())


def test_failing_allowance_does_not_stop_the_sweep():
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            stranger = await create_user(
                session, User(name="Nobody", email="n@example.com", password_hash="x")
            )
            broken = await create_allowance(
                session,
                Allowance(
                    household_id=household_id,
                    child_user_id=stranger.id,
                    parent_user_id=parent_id,
                    amount=Decimal("3"),
                    frequency="daily",
                    next_payment_date=TODAY,
                ),
            )
            good = await create_allowance(
                session,
                Allowance(
                    household_id=household_id,
                    child_user_id=child_id,
                    parent_user_id=parent_id,
                    amount=Decimal("4"),
                    frequency="daily",
                    next_payment_date=TODAY,
                ),
            )

            broken_id, good_id = broken.id, good.id
            assert await process_allowance_payments(session, TODAY) == 1

            # The rollback expired the loaded rows, so reload by id
            broken = await get_allowance(session, broken_id)
            assert broken.next_payment_date == TODAY
            assert await get_allowance_payments(session, broken_id) == []
            good = await get_allowance(session, good_id)
            assert good.next_payment_date == date(2024, 3, 14)

    asyncio.run(run())


def test_schedule_changes_recompute_next_date():
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            allowance = await create_allowance(
                session,
                Allowance(
                    household_id=household_id,
                    child_user_id=child_id,
                    parent_user_id=parent_id,
                    amount=Decimal("10"),
                    frequency="weekly",
                    day_of_payment=1,
                ),
                today=TODAY,
            )
            assert allowance.next_payment_date == date(2024, 3, 18)

            allowance = await update_allowance(
                session, allowance, {"amount": Decimal("12")}, today=TODAY
            )
            assert allowance.next_payment_date == date(2024, 3, 18)

            allowance = await update_allowance(
                session,
                allowance,
                {"frequency": "monthly", "day_of_payment": 15},
                today=TODAY,
            )
            assert allowance.next_payment_date == date(2024, 4, 15)

            await update_allowance(session, allowance, {"is_active": False})
            assert await get_child_allowances(session, child_id) == []

    asyncio.run(run())


def test_allowance_stopped_mid_sweep_is_not_paid(monkeypatch):
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            allowance = await create_allowance(
                session,
                Allowance(
                    household_id=household_id,
                    child_user_id=child_id,
                    parent_user_id=parent_id,
                    amount=Decimal("6"),
                    frequency="daily",
                    next_payment_date=TODAY,
                ),
            )
            allowance_id = allowance.id
            load = crud.get_allowance

            async def stopped_before_load(db, allowance_id):
                # A guardian deactivates it after the due list was read
                await db.execute(
                    update(Allowance)
                    .where(Allowance.id == allowance_id)
                    .values(is_active=False)
                )
                await db.commit()
                return await load(db, allowance_id)

            monkeypatch.setattr(crud, "get_allowance", stopped_before_load)
            assert await process_allowance_payments(session, TODAY) == 0
            monkeypatch.undo()

            settings = await get_child_settings(session, child_id, household_id)
            assert settings.current_balance == Decimal("0")
            assert await get_allowance_payments(session, allowance_id) == []
            allowance = await get_allowance(session, allowance_id)
            assert allowance.next_payment_date == TODAY

    asyncio.run(run())


def test_failed_notification_still_counts_payment(monkeypatch):
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            allowance = await create_allowance(
                session,
                Allowance(
                    household_id=household_id,
                    child_user_id=child_id,
                    parent_user_id=parent_id,
                    amount=Decimal("4"),
                    frequency="daily",
                    next_payment_date=TODAY,
                ),
            )
            allowance_id = allowance.id

            async def broken_notification(*args, **kwargs):
                raise RuntimeError("notification store unavailable")

            monkeypatch.setattr(crud, "create_notification", broken_notification)
            assert await process_allowance_payments(session, TODAY) == 1
            monkeypatch.undo()

            settings = await get_child_settings(session, child_id, household_id)
            assert settings.current_balance == Decimal("4")
            payments = await get_allowance_payments(session, allowance_id)
            assert [p.status for p in payments] == ["completed"]
            allowance = await get_allowance(session, allowance_id)
            assert allowance.next_payment_date == date(2024, 3, 14)
            assert await get_user_notifications(session, child_id) == []

    asyncio.run(run())


def test_tick_defaults_to_the_utc_date():
    async def run():
        Session, household_id, parent_id, child_id = await _setup()
        async with Session() as session:
            today = datetime.utcnow().date()
            allowance = await create_allowance(
                session,
                Allowance(
                    household_id=household_id,
                    child_user_id=child_id,
                    parent_user_id=parent_id,
                    amount=Decimal("2"),
                    frequency="daily",
                    next_payment_date=today,
                ),
            )
            allowance_id = allowance.id
            assert await process_allowance_payments(session) == 1
            allowance = await get_allowance(session, allowance_id)
            assert allowance.last_payment_date in (today, datetime.utcnow().date())

    asyncio.run(run())
