"""Command handlers: write-side use cases.

Each handler encapsulates a single business operation that mutates state.
Handlers depend only on port interfaces, never on concrete adapters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from agenthub.domain.entities import CreditTransaction, User
from agenthub.domain.enums import TransactionType
from agenthub.domain.events import CreditsAddedEvent
from agenthub.domain.exceptions import (
    AuthenticationError,
    UserAlreadyExistsError,
    ValidationError,
)
from agenthub.ports.outbound import CreditLedgerPort, EventBusPort, UserRepository
from agenthub.shared.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)

logger = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════
#  Tokens
# ═══════════════════════════════════════════════════════════════
@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int


@dataclass(frozen=True)
class TokenIssuer:
    """Mints access/refresh pairs. ``sub`` is always the user id."""

    secret_key: str
    algorithm: str = "HS256"
    access_expire_minutes: int = 30
    refresh_expire_days: int = 7

    def issue(self, user: User) -> TokenPair:
        claims = {"sub": user.id, "username": user.username, "role": user.role}
        return TokenPair(
            access_token=create_access_token(
                claims, self.secret_key, self.algorithm, self.access_expire_minutes
            ),
            refresh_token=create_refresh_token(
                claims, self.secret_key, self.algorithm, self.refresh_expire_days
            ),
            expires_in=self.access_expire_minutes * 60,
        )


# ═══════════════════════════════════════════════════════════════
#  Register User
# ═══════════════════════════════════════════════════════════════
@dataclass
class RegisterUserCommand:
    username: str
    email: str
    password: str


@dataclass(frozen=True)
class Registration:
    user: User
    trial: CreditTransaction


class RegisterUserHandler:
    """Creates the account, then grants the one-time trial credits."""

    def __init__(
        self,
        user_repo: UserRepository,
        ledger: CreditLedgerPort,
        event_bus: EventBusPort,
    ) -> None:
        self._user_repo = user_repo
        self._ledger = ledger
        self._event_bus = event_bus

    async def handle(self, cmd: RegisterUserCommand) -> Registration:
        log = logger.bind(username=cmd.username)
        if await self._user_repo.get_by_username(cmd.username) is not None:
            log.info("register_user_conflict")
            raise UserAlreadyExistsError(cmd.username)

        user = User(
            username=cmd.username,
            email=cmd.email,
            password_hash=hash_password(cmd.password),
        )
        await self._user_repo.save(user)
        log = log.bind(user_id=user.id)

        trial = await self._ledger.initialize_trial(user.id)
        await self._event_bus.publish(
            CreditsAddedEvent(
                user_id=user.id,
                amount=trial.amount,
                transaction_type=trial.type.value,
                new_balance=trial.balance_after,
                description=trial.description,
            )
        )
        log.info("register_user_completed", trial_credits=trial.amount)
        return Registration(user=user, trial=trial)


# ═══════════════════════════════════════════════════════════════
#  Authenticate / Refresh
# ═══════════════════════════════════════════════════════════════
@dataclass
class AuthenticateCommand:
    username: str
    password: str


class AuthenticateHandler:
    def __init__(self, user_repo: UserRepository, issuer: TokenIssuer) -> None:
        self._user_repo = user_repo
        self._issuer = issuer

    async def handle(self, cmd: AuthenticateCommand) -> TokenPair:
        user = await self._user_repo.get_by_username(cmd.username)
        if user is None or not verify_password(cmd.password, user.password_hash):
            logger.info("authenticate_failed", username=cmd.username)
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            raise AuthenticationError("User is inactive")
        logger.info("authenticate_succeeded", user_id=user.id)
        return self._issuer.issue(user)


@dataclass
class RefreshSessionCommand:
    refresh_token: str


class RefreshSessionHandler:
    """Exchanges a refresh token for a new access token.

    The refresh token itself is returned unchanged until it expires.
    """

    def __init__(self, user_repo: UserRepository, issuer: TokenIssuer) -> None:
        self._user_repo = user_repo
        self._issuer = issuer

    async def handle(self, cmd: RefreshSessionCommand) -> TokenPair:
        try:
            claims = decode_token(
                cmd.refresh_token,
                self._issuer.secret_key,
                self._issuer.algorithm,
                expected_type="refresh",
            )
        except AuthenticationError as exc:
            raise AuthenticationError("Session expired, please sign in again") from exc

        user = await self._user_repo.get_by_id(str(claims.get("sub", "")))
        if user is None or not user.is_active:
            raise AuthenticationError("User not found or inactive")

        fresh = self._issuer.issue(user)
        logger.info("session_refreshed", user_id=user.id)
        return TokenPair(
            access_token=fresh.access_token,
            refresh_token=cmd.refresh_token,
            expires_in=fresh.expires_in,
        )


# ═══════════════════════════════════════════════════════════════
#  Billing events
# ═══════════════════════════════════════════════════════════════
CHECKOUT_COMPLETED = "checkout.session.completed"
INVOICE_PAID = frozenset({"invoice.paid", "invoice.payment_succeeded"})
SUBSCRIPTION_CYCLE = "subscription_cycle"


@dataclass
class ProcessBillingEventCommand:
    """A billing event whose signature was already verified upstream."""

    event_id: str
    event_type: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BillingOutcome:
    event_id: str
    status: str  # "credited" | "duplicate" | "ignored"
    transaction: CreditTransaction | None = None
    rollover: CreditTransaction | None = None


class ProcessBillingEventHandler:
    """Turns payment events into ledger grants.

    The ledger idempotency key is derived from the event id, so a
    redelivered event returns the original transaction instead of granting
    twice.

    A checkout only buys credits in one-off payment mode once it is paid;
    subscription checkouts are credited by their invoices. A renewal
    invoice also rolls part of the unused balance into the new period.
    """

    def __init__(
        self,
        ledger: CreditLedgerPort,
        event_bus: EventBusPort,
        *,
        subscription_credits: int = 250,
    ) -> None:
        self._ledger = ledger
        self._event_bus = event_bus
        self._subscription_credits = subscription_credits

    async def handle(self, cmd: ProcessBillingEventCommand) -> BillingOutcome:
        log = logger.bind(event_id=cmd.event_id, event_type=cmd.event_type)

        if cmd.event_type == CHECKOUT_COMPLETED:
            if not self._is_paid_purchase(cmd.data):
                log.info(
                    "billing_checkout_ignored",
                    mode=cmd.data.get("mode"),
                    payment_status=cmd.data.get("payment_status"),
                )
                return BillingOutcome(event_id=cmd.event_id, status="ignored")
            amount = self._topup_amount(cmd.data)
            tx_type = TransactionType.TOPUP
            description = f"Credit purchase ({amount} credits)"
        elif cmd.event_type in INVOICE_PAID:
            amount = self._subscription_credits
            tx_type = TransactionType.SUBSCRIPTION
            description = "Monthly subscription credits"
        else:
            log.info("billing_event_ignored")
            return BillingOutcome(event_id=cmd.event_id, status="ignored")

        user_id = self._user_id(cmd.data)
        transaction = await self._ledger.add_credits(
            user_id,
            amount,
            tx_type,
            description,
            idempotency_key=f"billing:{cmd.event_id}",
            metadata={"event_id": cmd.event_id, "event_type": cmd.event_type},
        )
        if not transaction.replayed:
            await self._publish_grant(user_id, transaction, cmd.event_id)
            log.info(
                "billing_event_credited",
                user_id=user_id,
                amount=transaction.amount,
                transaction_id=transaction.id,
            )
        else:
            log.info("billing_event_duplicate", transaction_id=transaction.id)

        rollover = None
        renewal = cmd.data.get("billing_reason") == SUBSCRIPTION_CYCLE
        if tx_type is TransactionType.SUBSCRIPTION and renewal:
            # balance before this grant, so a redelivery computes the same amount
            rollover = await self._ledger.process_rollover(
                user_id,
                str(cmd.data.get("period_end") or cmd.event_id),
                unused=transaction.balance_after - transaction.amount,
            )
            if rollover is not None and not rollover.replayed:
                await self._publish_grant(user_id, rollover, cmd.event_id)
                log.info("billing_rollover_credited", user_id=user_id, amount=rollover.amount)

        return BillingOutcome(
            event_id=cmd.event_id,
            status="duplicate" if transaction.replayed else "credited",
            transaction=transaction,
            rollover=rollover,
        )

    async def _publish_grant(
        self, user_id: str, transaction: CreditTransaction, event_id: str
    ) -> None:
        await self._event_bus.publish(
            CreditsAddedEvent(
                user_id=user_id,
                amount=transaction.amount,
                transaction_type=transaction.type.value,
                new_balance=transaction.balance_after,
                description=transaction.description,
                metadata={"event_id": event_id},
            )
        )

    @staticmethod
    def _is_paid_purchase(data: dict[str, Any]) -> bool:
        mode = data.get("mode")
        payment_status = data.get("payment_status")
        return mode in (None, "payment") and payment_status in (None, "paid")

    @staticmethod
    def _user_id(data: dict[str, Any]) -> str:
        metadata = data.get("metadata") or {}
        user_id = metadata.get("user_id") or data.get("client_reference_id")
        if not user_id:
            raise ValidationError("Billing event carries no user_id")
        return str(user_id)

    @staticmethod
    def _topup_amount(data: dict[str, Any]) -> int:
        metadata = data.get("metadata") or {}
        try:
            amount = int(metadata.get("credits", 0))
        except (TypeError, ValueError) as exc:
            raise ValidationError("Billing event credits must be an integer") from exc
        if amount <= 0:
            raise ValidationError("Billing event carries no positive credit amount")
        return amount
