"""
SQLAlchemy models for the autopilot database.

Uses SQLite for local persistence of:
- Broker accounts and per-user risk settings
- Trade journal (realized P&L, open positions)
- Autopilot proposals and execution attempts
- System event audit trail
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    String,
    Float,
    Integer,
    Numeric,
    DateTime,
    Boolean,
    Text,
    ForeignKey,
    Index,
    JSON,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class BrokerAccount(Base):
    """
    A user's futures account at the broker.
    Balances are refreshed by the (external) broker sync.
    """
    __tablename__ = "broker_accounts"

    id = Column(Integer, primary_key=True)  # Broker account id
    user_id = Column(String(50), nullable=False, index=True)
    name = Column(String(100), nullable=True)
    balance = Column(Numeric(15, 2), nullable=False, default=0)
    buying_power = Column(Numeric(15, 2), nullable=False, default=0)
    margin_used = Column(Numeric(15, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class AutopilotSettings(Base):
    """
    Per-user risk limits.
    The only source for the trading-frequency limit.
    """
    __tablename__ = "autopilot_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(50), nullable=False, unique=True)
    daily_loss_limit = Column(Numeric(15, 2), nullable=False, default=500)
    max_position_size = Column(Integer, nullable=False, default=5)
    require_stop_loss = Column(Boolean, nullable=False, default=True)
    max_trades_per_day = Column(Integer, nullable=False, default=10)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Trade(Base):
    """
    Trade journal - records filled positions.
    Open while exit fields are null.
    """
    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(50), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("broker_accounts.id"), nullable=False)
    symbol = Column(String(20), nullable=False)
    side = Column(String(10), nullable=False)  # buy, sell
    size = Column(Integer, nullable=False)

    entry_price = Column(Float, nullable=False)
    opened_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Exit (null if still open)
    exit_price = Column(Float, nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    status = Column(String(20), default="OPEN")  # OPEN, CLOSED
    realized_pnl = Column(Numeric(15, 2), nullable=True)

    proposal_id = Column(String(36), ForeignKey("autopilot_proposals.id"), nullable=True)

    __table_args__ = (
        Index("ix_trades_account_status", "user_id", "account_id", "status"),
        Index("ix_trades_account_closed", "user_id", "account_id", "closed_at"),
    )


class AutopilotProposal(Base):
    """
    A risk-validated trade proposal.
    Never deleted; terminal states are kept as audit history.
    """
    __tablename__ = "autopilot_proposals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(50), nullable=False)
    account_id = Column(Integer, nullable=False)
    strategy_name = Column(String(100), nullable=False)
    symbol = Column(String(20), nullable=False)
    contract_id = Column(String(50), nullable=True)

    # Order
    side = Column(String(10), nullable=False)
    size = Column(Integer, nullable=False)
    order_type = Column(String(20), nullable=False)
    limit_price = Column(Float, nullable=True)
    stop_price = Column(Float, nullable=True)
    stop_loss = Column(JSON, nullable=True)  # {"ticks": 8, "type": "Stop"}
    take_profit = Column(JSON, nullable=True)  # {"ticks": 16, "type": "Limit"}

    # Lifecycle
    status = Column(String(20), nullable=False, default="pending")
    rejection_reason = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    external_order_id = Column(String(50), nullable=True)

    # Audit
    risk_metrics = Column(JSON, nullable=True)
    reasoning = Column(Text, nullable=True)
    iv_score = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    acknowledged_at = Column(DateTime(timezone=True), nullable=True)
    execution_started_at = Column(DateTime(timezone=True), nullable=True)
    executed_at = Column(DateTime(timezone=True), nullable=True)

    executions = relationship("AutopilotExecution", back_populates="proposal")

    __table_args__ = (
        Index("ix_proposals_account_created", "user_id", "account_id", "created_at"),
        Index("ix_proposals_user_status", "user_id", "status"),
        Index("ix_proposals_status_expires", "status", "expires_at"),
    )


class AutopilotExecution(Base):
    """One execute attempt against the broker, successful or not."""
    __tablename__ = "autopilot_executions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    proposal_id = Column(String(36), ForeignKey("autopilot_proposals.id"), nullable=False, index=True)
    user_id = Column(String(50), nullable=False)
    account_id = Column(Integer, nullable=False)
    contract_id = Column(String(50), nullable=True)
    order_id = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False)  # executed, failed
    order_payload = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    proposal = relationship("AutopilotProposal", back_populates="executions")


class SystemEvent(Base):
    """Audit trail of lifecycle events."""
    __tablename__ = "system_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(50), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)  # proposal_created, proposal_blocked, ...
    proposal_id = Column(String(36), nullable=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
