"""Per-user credit ledger with a reserve/commit/release protocol.

Every balance mutation is a single conditional UPDATE so the check and the
write happen atomically in the backing store:

* ``reserve`` adds to ``consumed`` only where ``consumed + amount <= allotment``.
* ``commit`` and ``release`` flip a reservation out of ``pending`` only where it
  is still pending, so the first resolver wins and later calls are no-ops.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy import func, select, update

from orchestrator.core.exceptions import InsufficientCreditError, UnknownReservationError

from .database import session_scope
from .models import CreditAccount, CreditReservation

logger = logging.getLogger("orchestrator.ledger")


class ReservationStatus(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    RELEASED = "released"


@dataclass(frozen=True)
class Reservation:
    token: str
    user_id: str
    amount: int
    status: ReservationStatus
    created_at: datetime


@dataclass(frozen=True)
class Resolution:
    token: str
    status: ReservationStatus
    already_resolved: bool


@dataclass(frozen=True)
class CreditBalance:
    user_id: str
    allotment: int
    consumed: int
    pending: int
    period_start: datetime

    @property
    def remaining(self) -> int:
        return max(self.allotment - self.consumed, 0)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _remaining(session, user_id: str) -> int:
    row = session.execute(
        select(CreditAccount.allotment, CreditAccount.consumed).where(
            CreditAccount.user_id == user_id
        )
    ).first()
    if row is None:
        return 0
    return max(row.allotment - row.consumed, 0)


def _to_reservation(row: CreditReservation) -> Reservation:
    return Reservation(
        token=row.token,
        user_id=row.user_id,
        amount=row.amount,
        status=ReservationStatus(row.status),
        created_at=row.created_at,
    )


def _balance_of(session, account: CreditAccount) -> CreditBalance:
    pending = session.scalar(
        select(func.coalesce(func.sum(CreditReservation.amount), 0))
        .where(CreditReservation.user_id == account.user_id)
        .where(CreditReservation.status == ReservationStatus.PENDING.value)
    )
    return CreditBalance(
        user_id=account.user_id,
        allotment=account.allotment,
        consumed=account.consumed,
        pending=int(pending or 0),
        period_start=account.period_start,
    )


def _new_account(session, user_id: str, allotment: int, now: datetime | None) -> CreditAccount:
    account = CreditAccount(
        user_id=user_id,
        allotment=allotment,
        consumed=0,
        period_start=now or _utcnow(),
    )
    session.add(account)
    session.flush()
    return account


def open_account(user_id: str, allotment: int, *, now: datetime | None = None) -> CreditBalance:
    """Create a credit account if it does not exist and return its balance."""
    if allotment < 0:
        raise ValueError("allotment must be non-negative")
    with session_scope() as session:
        account = session.get(CreditAccount, user_id)
        if account is None:
            account = _new_account(session, user_id, allotment, now)
        return _balance_of(session, account)


def set_allotment(user_id: str, allotment: int, *, now: datetime | None = None) -> CreditBalance:
    """Set a user's allotment, opening the account when needed.

    Raises ValueError when ``allotment`` is below the credits already consumed
    in the current period.
    """
    if allotment < 0:
        raise ValueError("allotment must be non-negative")
    with session_scope() as session:
        account = session.get(CreditAccount, user_id)
        if account is None:
            account = _new_account(session, user_id, allotment, now)
        else:
            result = session.execute(
                update(CreditAccount)
                .where(CreditAccount.user_id == user_id)
                .where(CreditAccount.consumed <= allotment)
                .values(allotment=allotment)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ValueError("allotment is below the credits already consumed")
            session.refresh(account)
        balance = _balance_of(session, account)
    logger.info(
        "Allotment set",
        extra={"event": "credit_allotment_set", "user_id": user_id, "allotment": allotment},
    )
    return balance


def grant_credits(user_id: str, amount: int, *, now: datetime | None = None) -> CreditBalance:
    """Raise a user's allotment, opening the account when needed."""
    if amount <= 0:
        raise ValueError("amount must be positive")
    with session_scope() as session:
        account = session.get(CreditAccount, user_id)
        if account is None:
            account = _new_account(session, user_id, amount, now)
        else:
            session.execute(
                update(CreditAccount)
                .where(CreditAccount.user_id == user_id)
                .values(allotment=CreditAccount.allotment + amount)
                .execution_options(synchronize_session=False)
            )
            session.refresh(account)
        balance = _balance_of(session, account)
    logger.info(
        "Credits granted",
        extra={"event": "credit_granted", "user_id": user_id, "amount": amount},
    )
    return balance


def get_balance(user_id: str) -> CreditBalance | None:
    with session_scope() as session:
        account = session.get(CreditAccount, user_id)
        if account is None:
            return None
        return _balance_of(session, account)


def reserve(user_id: str, amount: int, *, now: datetime | None = None) -> Reservation:
    """Provisionally consume ``amount`` credits, or raise InsufficientCreditError."""
    if amount <= 0:
        raise ValueError("amount must be positive")

    created_at = now or _utcnow()
    token = uuid.uuid4().hex
    with session_scope() as session:
        result = session.execute(
            update(CreditAccount)
            .where(CreditAccount.user_id == user_id)
            .where(CreditAccount.consumed + amount <= CreditAccount.allotment)
            .values(consumed=CreditAccount.consumed + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            remaining = _remaining(session, user_id)
            logger.info(
                "Credit reservation refused",
                extra={
                    "event": "credit_insufficient",
                    "user_id": user_id,
                    "amount": amount,
                    "remaining": remaining,
                },
            )
            raise InsufficientCreditError(user_id, amount, remaining)

        session.add(
            CreditReservation(
                token=token,
                user_id=user_id,
                amount=amount,
                status=ReservationStatus.PENDING.value,
                created_at=created_at,
            )
        )

    return Reservation(
        token=token,
        user_id=user_id,
        amount=amount,
        status=ReservationStatus.PENDING,
        created_at=created_at,
    )


def _resolve(token: str, target: ReservationStatus) -> Resolution:
    with session_scope() as session:
        reservation = session.get(CreditReservation, token)
        if reservation is None:
            raise UnknownReservationError(token)

        result = session.execute(
            update(CreditReservation)
            .where(CreditReservation.token == token)
            .where(CreditReservation.status == ReservationStatus.PENDING.value)
            .values(status=target.value, resolved_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = session.scalar(
                select(CreditReservation.status).where(CreditReservation.token == token)
            )
            return Resolution(token, ReservationStatus(current), already_resolved=True)

        if target is ReservationStatus.RELEASED:
            # A rollover since the reservation already zeroed the consumption.
            session.execute(
                update(CreditAccount)
                .where(CreditAccount.user_id == reservation.user_id)
                .where(CreditAccount.period_start <= reservation.created_at)
                .where(CreditAccount.consumed >= reservation.amount)
                .values(consumed=CreditAccount.consumed - reservation.amount)
                .execution_options(synchronize_session=False)
            )

    return Resolution(token, target, already_resolved=False)


def commit(token: str) -> Resolution:
    """Finalize a reservation. Repeat calls report the first outcome."""
    return _resolve(token, ReservationStatus.COMMITTED)


def release(token: str) -> Resolution:
    """Return a reservation's credits. Repeat calls report the first outcome."""
    return _resolve(token, ReservationStatus.RELEASED)


def get_reservation(token: str) -> Reservation:
    with session_scope() as session:
        row = session.get(CreditReservation, token)
        if row is None:
            raise UnknownReservationError(token)
        return _to_reservation(row)


def sweep_stale_reservations(ttl: timedelta, *, now: datetime | None = None) -> int:
    """Release pending reservations older than ``ttl``; return how many were released."""
    cutoff = (now or _utcnow()) - ttl
    with session_scope() as session:
        tokens = session.scalars(
            select(CreditReservation.token)
            .where(CreditReservation.status == ReservationStatus.PENDING.value)
            .where(CreditReservation.created_at < cutoff)
        ).all()

    released = 0
    for token in tokens:
        if not release(token).already_resolved:
            released += 1
    if released:
        logger.warning(
            "Stale reservations released",
            extra={"event": "reservation_swept", "count": released},
        )
    return released


def rollover_periods(period: timedelta, *, now: datetime | None = None) -> int:
    """Start a new period for accounts whose period began more than ``period`` ago."""
    current = now or _utcnow()
    with session_scope() as session:
        result = session.execute(
            update(CreditAccount)
            .where(CreditAccount.period_start < current - period)
            .values(consumed=0, period_start=current)
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount
    logger.info("Credit periods rolled over", extra={"event": "credit_rollover", "count": count})
    return count


class CreditHold:
    """A reservation that must be committed, or is released on scope exit."""

    def __init__(self, reservation: Reservation) -> None:
        self.reservation = reservation
        self.resolution: Resolution | None = None

    def commit(self) -> Resolution:
        self.resolution = commit(self.reservation.token)
        return self.resolution

    def release(self) -> Resolution:
        self.resolution = release(self.reservation.token)
        return self.resolution

    def __enter__(self) -> "CreditHold":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.resolution is None:
            self.release()


def credit_hold(user_id: str, amount: int) -> CreditHold:
    """Reserve credit and return a hold for use in a ``with`` block.

    Leaving the block without committing releases the reservation, whether
    the block returned, raised, or its task was cancelled.
    """
    return CreditHold(reserve(user_id, amount))


__all__ = [
    "CreditBalance",
    "CreditHold",
    "Reservation",
    "ReservationStatus",
    "Resolution",
    "commit",
    "credit_hold",
    "get_balance",
    "get_reservation",
    "grant_credits",
    "open_account",
    "release",
    "reserve",
    "rollover_periods",
    "set_allotment",
    "sweep_stale_reservations",
]
