from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.db.database import create_engine, create_session_factory, create_tables
from app.db.models import AutopilotSettings, BrokerAccount, SystemEvent, Trade
from app.db.repository import SqlTradingStore
from app.schemas.proposal import ExecutionRecord, Proposal, ProposalStatus
from app.schemas.risk import RiskMetrics

NOW = datetime(2026, 1, 14, 15, 0, tzinfo=timezone.utc)
USER_ID = "user-1"
ACCOUNT_ID = 101


@pytest.fixture()
async def session_factory():
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture()
async def sql_store(session_factory) -> SqlTradingStore:
    async with session_factory() as session:
        session.add(BrokerAccount(
            id=ACCOUNT_ID,
            user_id=USER_ID,
            balance=Decimal("50000.00"),
            buying_power=Decimal("25000.00"),
        ))
        session.add(AutopilotSettings(user_id=USER_ID, daily_loss_limit=Decimal("750.00"), max_trades_per_day=4))
        await session.commit()
    return SqlTradingStore(session_factory)


def make_proposal(created_at: datetime = NOW, **overrides) -> Proposal:
    fields = dict(
        id=f"p-{created_at.timestamp():.0f}",
        user_id=USER_ID,
        account_id=ACCOUNT_ID,
        strategy_name="ORB Breakout",
        symbol="/ES",
        side="buy",
        size=2,
        order_type="limit",
        limit_price=6000.0,
        stop_loss={"ticks": 8, "type": "Stop"},
        status=ProposalStatus.PENDING,
        risk_metrics=RiskMetrics(daily_loss=Decimal("120.50"), position_size=2),
        created_at=created_at,
        expires_at=created_at + timedelta(minutes=15),
    )
    fields.update(overrides)
    return Proposal(**fields)


@pytest.mark.asyncio
async def test_account_and_settings(sql_store):
    account = await sql_store.get_account(USER_ID, ACCOUNT_ID)
    settings = await sql_store.get_risk_settings(USER_ID)

    assert account.buying_power == Decimal("25000.00")
    assert settings.daily_loss_limit == Decimal("750.00")
    assert settings.max_trades_per_day == 4
    assert settings.max_position_size == 5

    assert await sql_store.get_account("user-2", ACCOUNT_ID) is None
    assert await sql_store.get_risk_settings("user-2") is None


@pytest.mark.asyncio
async def test_proposal_round_trip(sql_store):
    proposal = make_proposal()
    await sql_store.persist_proposal(proposal)

    loaded = await sql_store.get_proposal(proposal.id)

    assert loaded.created_at == NOW
    assert loaded.expires_at.tzinfo is not None
    assert loaded.stop_loss.ticks == 8
    assert loaded.risk_metrics.daily_loss == Decimal("120.50")
    assert loaded.status == ProposalStatus.PENDING


@pytest.mark.asyncio
async def test_status_update_is_compare_and_set(sql_store):
    proposal = make_proposal()
    await sql_store.persist_proposal(proposal)

    approved = await sql_store.update_proposal_status(
        proposal.id, ProposalStatus.APPROVED, expected_status=ProposalStatus.PENDING, acknowledged_at=NOW
    )
    stale = await sql_store.update_proposal_status(
        proposal.id, ProposalStatus.REJECTED, expected_status=ProposalStatus.PENDING
    )

    assert approved.status == ProposalStatus.APPROVED
    assert approved.acknowledged_at == NOW
    assert stale is None
    assert (await sql_store.get_proposal(proposal.id)).status == ProposalStatus.APPROVED


@pytest.mark.asyncio
async def test_claim_for_execution_once(sql_store):
    pending = make_proposal(NOW - timedelta(minutes=1))
    approved = make_proposal(status=ProposalStatus.APPROVED)
    await sql_store.persist_proposal(pending)
    await sql_store.persist_proposal(approved)

    claimed = await sql_store.claim_for_execution(approved.id, NOW)

    assert claimed.execution_started_at == NOW
    assert claimed.status == ProposalStatus.APPROVED
    assert await sql_store.claim_for_execution(approved.id, NOW) is None
    assert await sql_store.claim_for_execution(pending.id, NOW) is None
    assert await sql_store.claim_for_execution("missing", NOW) is None


@pytest.mark.asyncio
async def test_count_recent_and_overdue(sql_store):
    await sql_store.persist_proposal(make_proposal(NOW - timedelta(hours=25)))
    await sql_store.persist_proposal(make_proposal(NOW - timedelta(hours=2)))
    await sql_store.persist_proposal(make_proposal(NOW))

    assert await sql_store.count_recent_proposals(USER_ID, ACCOUNT_ID, NOW - timedelta(hours=24)) == 2
    assert len(await sql_store.list_overdue_pending(NOW)) == 2


@pytest.mark.asyncio
async def test_list_proposals(sql_store):
    for hours in (3, 2, 1):
        await sql_store.persist_proposal(make_proposal(NOW - timedelta(hours=hours)))

    page, total = await sql_store.list_proposals(USER_ID, limit=2)

    assert total == 3
    assert [p.created_at for p in page] == [NOW - timedelta(hours=1), NOW - timedelta(hours=2)]


@pytest.mark.asyncio
async def test_realized_pnl_and_open_positions(sql_store, session_factory):
    async with session_factory() as session:
        session.add_all([
            Trade(user_id=USER_ID, account_id=ACCOUNT_ID, symbol="/ES", side="buy", size=1,
                  entry_price=6000.0, status="CLOSED", realized_pnl=Decimal("-300.00"),
                  closed_at=NOW - timedelta(hours=1)),
            Trade(user_id=USER_ID, account_id=ACCOUNT_ID, symbol="/ES", side="buy", size=1,
                  entry_price=6000.0, status="CLOSED", realized_pnl=Decimal("-900.00"),
                  closed_at=NOW - timedelta(days=1)),
        ])
        await session.commit()

    await sql_store.record_trade_opened(make_proposal(), 6000.0, NOW)

    pnl = await sql_store.get_realized_pnl_today(USER_ID, ACCOUNT_ID, NOW - timedelta(hours=10))
    assert pnl == Decimal("-300.00")
    assert await sql_store.count_open_positions(USER_ID, ACCOUNT_ID) == 1


@pytest.mark.asyncio
async def test_open_positions_follow_closed_at(sql_store, session_factory):
    async with session_factory() as session:
        session.add_all([
            Trade(user_id=USER_ID, account_id=ACCOUNT_ID, symbol="/ES", side="buy", size=1,
                  entry_price=6000.0, status="CLOSED"),
            Trade(user_id=USER_ID, account_id=ACCOUNT_ID, symbol="/ES", side="buy", size=1,
                  entry_price=6000.0, status="OPEN", closed_at=NOW - timedelta(minutes=5)),
        ])
        await session.commit()

    assert await sql_store.count_open_positions(USER_ID, ACCOUNT_ID) == 1


@pytest.mark.asyncio
async def test_executions(sql_store):
    proposal = make_proposal()
    await sql_store.persist_proposal(proposal)
    await sql_store.record_execution(ExecutionRecord(
        proposal_id=proposal.id,
        user_id=USER_ID,
        account_id=ACCOUNT_ID,
        status=ProposalStatus.FAILED,
        error_message="Insufficient margin",
        created_at=NOW,
    ))

    executions = await sql_store.list_executions(proposal.id)

    assert len(executions) == 1
    assert executions[0].error_message == "Insufficient margin"
    assert executions[0].status == ProposalStatus.FAILED


@pytest.mark.asyncio
async def test_system_event_logged(sql_store, session_factory):
    await sql_store.log_system_event(USER_ID, "proposal_blocked", payload={"reason": "risk"})

    async with session_factory() as session:
        events = (await session.execute(select(SystemEvent))).scalars().all()

    assert [(e.event_type, e.payload) for e in events] == [("proposal_blocked", {"reason": "risk"})]
