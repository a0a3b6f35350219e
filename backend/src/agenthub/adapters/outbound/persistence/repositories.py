"""Concrete repository implementations using SQLAlchemy.

These adapters implement the outbound port interfaces, translating between
domain entities and ORM models.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agenthub.domain.entities import CreditTransaction, User
from agenthub.domain.enums import TransactionType
from agenthub.domain.events import AgentTurnCompletedEvent
from agenthub.ports.outbound import UsageLogRepository, UserRepository

from .models import CreditTransactionModel, UsageLogModel, UserModel


# ── Converters ───────────────────────────────────────────────
def _user_to_model(u: User) -> UserModel:
    return UserModel(
        id=u.id,
        username=u.username,
        email=u.email,
        password_hash=u.password_hash,
        role=u.role,
        is_active=u.is_active,
        created_at=u.created_at,
    )


def _model_to_user(m: UserModel) -> User:
    return User(
        id=m.id,
        username=m.username,
        email=m.email,
        password_hash=m.password_hash,
        role=m.role,
        is_active=m.is_active,
        created_at=m.created_at,
    )


def model_to_transaction(m: CreditTransactionModel) -> CreditTransaction:
    return CreditTransaction(
        id=m.id,
        user_id=m.user_id,
        amount=m.amount,
        type=TransactionType(m.type),
        idempotency_key=m.idempotency_key,
        description=m.description,
        balance_after=m.balance_after,
        agent_id=m.agent_id,
        metadata=dict(m.metadata_ or {}),
        created_at=m.created_at,
    )


# ═══════════════════════════════════════════════════════════════
#  Users
# ═══════════════════════════════════════════════════════════════
class SQLAlchemyUserRepository(UserRepository):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def save(self, user: User) -> None:
        self._session.add(_user_to_model(user))
        await self._session.commit()

    async def get_by_id(self, user_id: str) -> User | None:
        result = await self._session.get(UserModel, user_id)
        return _model_to_user(result) if result else None

    async def get_by_username(self, username: str) -> User | None:
        stmt = select(UserModel).where(UserModel.username == username)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _model_to_user(model) if model else None


# ═══════════════════════════════════════════════════════════════
#  Usage audit log
# ═══════════════════════════════════════════════════════════════
class SQLAlchemyUsageLogRepository(UsageLogRepository):
    """Writes from event consumers, so it owns its sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record_turn(self, event: AgentTurnCompletedEvent) -> None:
        async with self._session_factory() as session:
            session.add(
                UsageLogModel(
                    user_id=event.user_id,
                    agent_id=event.agent_id,
                    outcome=event.outcome,
                    provider=event.provider,
                    model=event.model,
                    tokens=event.tokens,
                    response_time_ms=event.response_time_ms,
                    credits_cost=event.credits_cost,
                    idempotency_key=event.idempotency_key,
                    correlation_id=event.correlation_id,
                    created_at=event.occurred_at,
                )
            )
            await session.commit()

    async def list_recent(self, user_id: str, *, limit: int = 50) -> list[dict[str, Any]]:
        async with self._session_factory() as session:
            stmt = (
                select(UsageLogModel)
                .where(UsageLogModel.user_id == user_id)
                .order_by(UsageLogModel.created_at.desc(), UsageLogModel.id.desc())
                .limit(limit)
            )
            result = await session.execute(stmt)
            return [
                {
                    "agent_id": m.agent_id,
                    "outcome": m.outcome,
                    "provider": m.provider,
                    "model": m.model,
                    "tokens": m.tokens,
                    "response_time_ms": m.response_time_ms,
                    "credits_cost": m.credits_cost,
                    "idempotency_key": m.idempotency_key,
                    "created_at": m.created_at,
                }
                for m in result.scalars().all()
            ]
