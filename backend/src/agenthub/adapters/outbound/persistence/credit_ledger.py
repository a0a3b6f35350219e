"""SQLAlchemy credit ledger: the authoritative balance store.

Every operation runs in its own short transaction, so a committed debit is
never undone by a later failure in the request that triggered it.

Concurrency rules:

* Debits are a single conditional ``UPDATE ... WHERE balance >= cost``;
  the storage engine serialises concurrent debits for the same user and no
  application code reads the balance before writing it.
* Idempotency rests on the unique ``idempotency_key`` column. A replayed
  key loses the insert race, rolls its own debit back and returns the
  recorded row.
* Writes are issued before any read inside a transaction. SQLite only
  waits on a busy lock when the connection holds no read lock yet.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agenthub.domain.entities import CreditBalance, CreditTransaction
from agenthub.domain.enums import TransactionType
from agenthub.domain.exceptions import ValidationError
from agenthub.domain.value_objects import AgentEligibility, DeductionResult
from agenthub.ports.outbound import CreditLedgerPort
from agenthub.shared.observability.metrics import CREDIT_DEDUCTIONS, CREDITS_GRANTED

from .models import AgentPricingModel, CreditBalanceModel, CreditTransactionModel
from .repositories import model_to_transaction

logger = structlog.get_logger(__name__)

INSUFFICIENT_BALANCE = "InsufficientBalance"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLAlchemyCreditLedger(CreditLedgerPort):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        default_credit_weight: float = 1.0,
        trial_credits: int = 5,
        rollover_rate: float = 0.3,
        rollover_cap: int = 75,
    ) -> None:
        self._session_factory = session_factory
        self._default_weight = default_credit_weight
        self._trial_credits = trial_credits
        self._rollover_rate = rollover_rate
        self._rollover_cap = rollover_cap

    # ── Reads ────────────────────────────────────────────────
    async def get_credit_cost(self, agent_id: str) -> int:
        async with self._session_factory() as session:
            return await self._credit_cost(session, agent_id)

    async def get_balance(self, user_id: str) -> CreditBalance:
        async with self._session_factory() as session:
            row = await session.get(CreditBalanceModel, user_id)
            if row is None:
                return CreditBalance(user_id=user_id, balance=0)
            return CreditBalance(user_id=user_id, balance=row.balance, last_updated=row.last_updated)

    async def check_eligibility(self, agent_id: str, user_id: str) -> AgentEligibility:
        async with self._session_factory() as session:
            required = await self._credit_cost(session, agent_id)
            available = await self._current_balance(session, user_id)
        return AgentEligibility.compute(required=required, available=available)

    async def list_transactions(
        self,
        user_id: str,
        *,
        type: TransactionType | None = None,
        limit: int = 50,
    ) -> list[CreditTransaction]:
        stmt = select(CreditTransactionModel).where(CreditTransactionModel.user_id == user_id)
        if type is not None:
            stmt = stmt.where(CreditTransactionModel.type == type.value)
        stmt = stmt.order_by(CreditTransactionModel.created_at.desc()).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [model_to_transaction(m) for m in result.scalars().all()]

    async def usage_stats(self, user_id: str, *, days: int = 30) -> dict[str, int]:
        since = _utcnow() - timedelta(days=days)
        used = func.coalesce(
            func.sum(
                func.abs(CreditTransactionModel.amount)
            ).filter(CreditTransactionModel.amount < 0),
            0,
        )
        added = func.coalesce(
            func.sum(CreditTransactionModel.amount).filter(CreditTransactionModel.amount > 0),
            0,
        )
        stmt = select(used, added, func.count(CreditTransactionModel.id)).where(
            CreditTransactionModel.user_id == user_id,
            CreditTransactionModel.created_at >= since,
        )
        async with self._session_factory() as session:
            total_used, total_added, count = (await session.execute(stmt)).one()
        return {
            "total_used": int(total_used),
            "total_added": int(total_added),
            "net_change": int(total_added) - int(total_used),
            "transaction_count": int(count),
        }

    # ── Debit ────────────────────────────────────────────────
    async def deduct(
        self, agent_id: str, user_id: str, idempotency_key: str
    ) -> DeductionResult:
        """Atomically debit the agent's cost, at most once per key."""
        if not idempotency_key:
            raise ValidationError("idempotency_key is required")
        log = logger.bind(agent_id=agent_id, user_id=user_id, idempotency_key=idempotency_key)

        async with self._session_factory() as session:
            cost = await self._credit_cost(session, agent_id)
            stmt = (
                update(CreditBalanceModel)
                .where(
                    CreditBalanceModel.user_id == user_id,
                    CreditBalanceModel.balance >= cost,
                )
                .values(balance=CreditBalanceModel.balance - cost, last_updated=_utcnow())
                .returning(CreditBalanceModel.balance)
                .execution_options(synchronize_session=False)
            )
            new_balance = (await session.execute(stmt)).scalar_one_or_none()

            if new_balance is None:
                await session.rollback()
                replay = await self._find_by_key(session, idempotency_key)
                if replay is not None:
                    return self._replayed(replay, log)
                available = await self._current_balance(session, user_id)
                CREDIT_DEDUCTIONS.labels(outcome="insufficient").inc()
                log.info("credit_deduction_insufficient", required=cost, available=available)
                return DeductionResult(
                    success=False,
                    credits_cost=cost,
                    new_balance=available,
                    error=INSUFFICIENT_BALANCE,
                )

            txn = CreditTransactionModel(
                id=uuid.uuid4().hex,
                user_id=user_id,
                amount=-cost,
                type=TransactionType.USAGE.value,
                description=f"Agent {agent_id} usage",
                idempotency_key=idempotency_key,
                balance_after=new_balance,
                agent_id=agent_id,
                metadata_={},
                created_at=_utcnow(),
            )
            session.add(txn)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                replay = await self._find_by_key(session, idempotency_key)
                if replay is None:
                    raise
                return self._replayed(replay, log)

        CREDIT_DEDUCTIONS.labels(outcome="success").inc()
        log.info(
            "credits_deducted",
            credits_cost=cost,
            new_balance=new_balance,
            transaction_id=txn.id,
        )
        return DeductionResult(
            success=True,
            credits_cost=cost,
            new_balance=new_balance,
            transaction_id=txn.id,
        )

    # ── Credit ───────────────────────────────────────────────
    async def add_credits(
        self,
        user_id: str,
        amount: int,
        type: TransactionType,
        description: str,
        *,
        idempotency_key: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CreditTransaction:
        """Atomic increment. With a key, a replay returns the original grant."""
        if amount <= 0:
            raise ValidationError(f"Credit amount must be positive, got {amount}")
        if type == TransactionType.USAGE:
            raise ValidationError("Usage entries are created by deduct()")
        key = idempotency_key or f"{type.value}:{uuid.uuid4().hex}"

        async with self._session_factory() as session:
            new_balance = await self._increment(session, user_id, amount)
            txn = CreditTransactionModel(
                id=uuid.uuid4().hex,
                user_id=user_id,
                amount=amount,
                type=type.value,
                description=description,
                idempotency_key=key,
                balance_after=new_balance,
                agent_id=None,
                metadata_=metadata or {},
                created_at=_utcnow(),
            )
            session.add(txn)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                existing = await self._find_by_key(session, key)
                if existing is None:
                    raise
                logger.info("credit_grant_duplicate", user_id=user_id, idempotency_key=key)
                return replace(model_to_transaction(existing), replayed=True)

        CREDITS_GRANTED.labels(type=type.value).inc(amount)
        logger.info(
            "credits_added",
            user_id=user_id,
            amount=amount,
            type=type.value,
            new_balance=new_balance,
        )
        return model_to_transaction(txn)

    async def initialize_trial(self, user_id: str) -> CreditTransaction:
        return await self.add_credits(
            user_id,
            self._trial_credits,
            TransactionType.TRIAL,
            "Welcome trial credits",
            idempotency_key=f"trial:{user_id}",
        )

    def rollover_amount(self, unused: int) -> int:
        """Share of ``unused`` credits carried into the next period."""
        if unused <= 0:
            return 0
        # round first: 0.3 is not exact in binary
        return min(self._rollover_cap, math.floor(round(unused * self._rollover_rate, 6)))

    async def process_rollover(
        self, user_id: str, period: str, *, unused: int | None = None
    ) -> CreditTransaction | None:
        """Grant ROLLOVER credits for the billing period that just ended.

        The grant is keyed by ``(user_id, period)``: a second call for the
        same period returns the recorded row flagged ``replayed``. ``unused``
        defaults to the current balance. Returns ``None`` when nothing rolls
        over.
        """
        if not period:
            raise ValidationError("Rollover period must not be empty")
        key = f"rollover:{user_id}:{period}"
        async with self._session_factory() as session:
            existing = await self._find_by_key(session, key)
            if existing is not None:
                logger.info("credit_rollover_duplicate", user_id=user_id, period=period)
                return replace(model_to_transaction(existing), replayed=True)
            if unused is None:
                unused = await self._current_balance(session, user_id)

        amount = self.rollover_amount(unused)
        if amount <= 0:
            logger.info("credit_rollover_skipped", user_id=user_id, period=period, unused=unused)
            return None
        return await self.add_credits(
            user_id,
            amount,
            TransactionType.ROLLOVER,
            f"Rollover of {amount} unused credits",
            idempotency_key=key,
            metadata={"period": period, "unused": unused},
        )

    async def set_agent_pricing(self, agent_id: str, credit_weight: float) -> None:
        if credit_weight <= 0:
            raise ValidationError("credit_weight must be positive")
        async with self._session_factory() as session:
            row = await session.get(AgentPricingModel, agent_id)
            if row is None:
                session.add(AgentPricingModel(agent_id=agent_id, credit_weight=credit_weight))
            else:
                row.credit_weight = credit_weight
            await session.commit()

    # ── Internals ────────────────────────────────────────────
    async def _credit_cost(self, session: AsyncSession, agent_id: str) -> int:
        row = await session.get(AgentPricingModel, agent_id)
        weight = row.credit_weight if row is not None else self._default_weight
        return max(1, math.ceil(weight))

    @staticmethod
    async def _current_balance(session: AsyncSession, user_id: str) -> int:
        stmt = select(CreditBalanceModel.balance).where(CreditBalanceModel.user_id == user_id)
        return (await session.execute(stmt)).scalar_one_or_none() or 0

    @staticmethod
    async def _find_by_key(
        session: AsyncSession, idempotency_key: str
    ) -> CreditTransactionModel | None:
        stmt = select(CreditTransactionModel).where(
            CreditTransactionModel.idempotency_key == idempotency_key
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    @staticmethod
    async def _increment(session: AsyncSession, user_id: str, amount: int) -> int:
        stmt = (
            update(CreditBalanceModel)
            .where(CreditBalanceModel.user_id == user_id)
            .values(balance=CreditBalanceModel.balance + amount, last_updated=_utcnow())
            .returning(CreditBalanceModel.balance)
            .execution_options(synchronize_session=False)
        )
        new_balance = (await session.execute(stmt)).scalar_one_or_none()
        if new_balance is not None:
            return new_balance

        try:
            async with session.begin_nested():
                session.add(CreditBalanceModel(user_id=user_id, balance=amount))
            return amount
        except IntegrityError:
            # Another writer created the row first
            return (await session.execute(stmt)).scalar_one()

    @staticmethod
    def _replayed(row: CreditTransactionModel, log: Any) -> DeductionResult:
        CREDIT_DEDUCTIONS.labels(outcome="duplicate").inc()
        log.info("credit_deduction_replayed", transaction_id=row.id)
        return DeductionResult(
            success=True,
            credits_cost=-row.amount,
            new_balance=row.balance_after,
            transaction_id=row.id,
            is_duplicate=True,
        )
