"""ORM models for the credit ledger, usage records and telemetry events."""

from __future__ import annotations

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base


class CreditAccount(Base):
    __tablename__ = "credit_accounts"
    __table_args__ = (
        CheckConstraint("consumed >= 0", name="ck_credit_accounts_consumed_non_negative"),
        CheckConstraint("consumed <= allotment", name="ck_credit_accounts_within_allotment"),
    )

    user_id = Column(String(100), primary_key=True)
    allotment = Column(Integer, nullable=False, default=0)
    consumed = Column(Integer, nullable=False, default=0)
    period_start = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CreditReservation(Base):
    __tablename__ = "credit_reservations"

    token = Column(String(64), primary_key=True)
    user_id = Column(String(100), nullable=False)
    amount = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False)
    resolved_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index("ix_credit_reservations_status_created", "status", "created_at"),
        Index("ix_credit_reservations_user", "user_id"),
    )


class GenerationAttemptRecord(Base):
    __tablename__ = "generation_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    generation_id = Column(String(64), nullable=False)
    user_id = Column(String(100))
    schema_id = Column(String(64), nullable=False)
    ordinal = Column(Integer, nullable=False)
    provider = Column(String(100), nullable=False)
    model = Column(String(200), nullable=False)
    prompt_tokens = Column(Integer, nullable=False, default=0)
    completion_tokens = Column(Integer, nullable=False, default=0)
    cost = Column(Float, nullable=False, default=0.0)
    latency_ms = Column(Float, nullable=False)
    outcome = Column(String(32), nullable=False)
    error_message = Column(String(512))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_generation_attempts_generation", "generation_id", "ordinal"),
        Index("ix_generation_attempts_created", "created_at"),
    )


class OrchestratorEvent(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ts = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    level = Column(String(16), nullable=False)
    kind = Column(String(64), nullable=False)
    request_id = Column(String(64))
    generation_id = Column(String(64))
    user_id = Column(String(100))
    provider_from = Column(String(100))
    provider_to = Column(String(100))
    model = Column(String(200))
    message = Column(String(512))
    meta = Column(Text)

    __table_args__ = (
        Index("ix_events_ts", "ts"),
        Index("ix_events_kind_ts", "kind", "ts"),
    )
