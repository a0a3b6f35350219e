"""Unit tests for command handlers (write-side use cases)."""

from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import pytest

from agenthub.application.commands import (
    AuthenticateCommand,
    AuthenticateHandler,
    ProcessBillingEventCommand,
    ProcessBillingEventHandler,
    RefreshSessionCommand,
    RefreshSessionHandler,
    RegisterUserCommand,
    RegisterUserHandler,
    TokenIssuer,
)
from agenthub.domain.entities import CreditTransaction, User
from agenthub.domain.enums import TransactionType
from agenthub.domain.events import CreditsAddedEvent
from agenthub.domain.exceptions import (
    AuthenticationError,
    UserAlreadyExistsError,
    ValidationError,
)
from agenthub.shared.security import create_refresh_token, decode_token, hash_password


@pytest.fixture
def user_repo() -> Mock:
    repo = Mock()
    repo.save = AsyncMock()
    repo.get_by_id = AsyncMock(return_value=None)
    repo.get_by_username = AsyncMock(return_value=None)
    return repo


@pytest.fixture
def issuer(jwt_secret) -> TokenIssuer:
    return TokenIssuer(secret_key=jwt_secret, access_expire_minutes=15)


@pytest.fixture
def existing_user() -> User:
    return User(
        username="ana",
        email="ana@example.com",
        password_hash=hash_password("s3cret-pass"),
        id="user-ana",
    )


# ═══════════════════════════════════════════════════════════════
#  Register
# ═══════════════════════════════════════════════════════════════
class TestRegisterUser:
    @pytest.mark.asyncio
    async def test_creates_user_and_grants_trial(
        self, user_repo, mock_ledger, mock_event_bus
    ) -> None:
        mock_ledger.initialize_trial.side_effect = lambda uid: CreditTransaction(
            user_id=uid,
            amount=5,
            type=TransactionType.TRIAL,
            idempotency_key=f"trial:{uid}",
            description="Free trial credits",
            balance_after=5,
        )
        handler = RegisterUserHandler(user_repo, mock_ledger, mock_event_bus)

        result = await handler.handle(
            RegisterUserCommand(username="ana", email="ana@example.com", password="s3cret-pass")
        )

        saved = user_repo.save.await_args.args[0]
        assert saved.username == "ana"
        assert saved.password_hash != "s3cret-pass"
        assert result.trial.amount == 5
        mock_ledger.initialize_trial.assert_awaited_once_with(result.user.id)

        event = mock_event_bus.publish.await_args.args[0]
        assert isinstance(event, CreditsAddedEvent)
        assert event.transaction_type == "trial"
        assert event.new_balance == 5

    @pytest.mark.asyncio
    async def test_duplicate_username(
        self, user_repo, mock_ledger, mock_event_bus, existing_user
    ) -> None:
        user_repo.get_by_username.return_value = existing_user
        handler = RegisterUserHandler(user_repo, mock_ledger, mock_event_bus)

        with pytest.raises(UserAlreadyExistsError):
            await handler.handle(
                RegisterUserCommand(username="ana", email="x@example.com", password="whatever1")
            )
        user_repo.save.assert_not_awaited()
        mock_ledger.initialize_trial.assert_not_awaited()


# ═══════════════════════════════════════════════════════════════
#  Authenticate / Refresh
# ═══════════════════════════════════════════════════════════════
class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_issues_token_pair(self, user_repo, issuer, existing_user, jwt_secret) -> None:
        user_repo.get_by_username.return_value = existing_user
        pair = await AuthenticateHandler(user_repo, issuer).handle(
            AuthenticateCommand(username="ana", password="s3cret-pass")
        )

        claims = decode_token(pair.access_token, jwt_secret, expected_type="access")
        assert claims["sub"] == "user-ana"
        assert claims["role"] == "user"
        assert pair.expires_in == 900
        assert decode_token(pair.refresh_token, jwt_secret)["type"] == "refresh"

    @pytest.mark.asyncio
    async def test_wrong_password(self, user_repo, issuer, existing_user) -> None:
        user_repo.get_by_username.return_value = existing_user
        with pytest.raises(AuthenticationError, match="Invalid credentials"):
            await AuthenticateHandler(user_repo, issuer).handle(
                AuthenticateCommand(username="ana", password="nope")
            )

    @pytest.mark.asyncio
    async def test_unknown_user(self, user_repo, issuer) -> None:
        with pytest.raises(AuthenticationError):
            await AuthenticateHandler(user_repo, issuer).handle(
                AuthenticateCommand(username="ghost", password="x")
            )

    @pytest.mark.asyncio
    async def test_inactive_user(self, user_repo, issuer, existing_user) -> None:
        existing_user.is_active = False
        user_repo.get_by_username.return_value = existing_user
        with pytest.raises(AuthenticationError, match="inactive"):
            await AuthenticateHandler(user_repo, issuer).handle(
                AuthenticateCommand(username="ana", password="s3cret-pass")
            )


class TestRefreshSession:
    @pytest.mark.asyncio
    async def test_new_access_same_refresh(
        self, user_repo, issuer, existing_user, jwt_secret
    ) -> None:
        user_repo.get_by_id.return_value = existing_user
        refresh = create_refresh_token({"sub": "user-ana"}, jwt_secret)

        pair = await RefreshSessionHandler(user_repo, issuer).handle(
            RefreshSessionCommand(refresh_token=refresh)
        )

        assert pair.refresh_token == refresh
        assert decode_token(pair.access_token, jwt_secret, expected_type="access")["sub"] == (
            "user-ana"
        )
        user_repo.get_by_id.assert_awaited_once_with("user-ana")

    @pytest.mark.asyncio
    async def test_expired_refresh(self, user_repo, issuer, jwt_secret) -> None:
        refresh = create_refresh_token({"sub": "user-ana"}, jwt_secret, expires_days=-1)
        with pytest.raises(AuthenticationError, match="sign in again"):
            await RefreshSessionHandler(user_repo, issuer).handle(
                RefreshSessionCommand(refresh_token=refresh)
            )

    @pytest.mark.asyncio
    async def test_access_token_not_accepted(self, user_repo, issuer, existing_user) -> None:
        pair = issuer.issue(existing_user)
        with pytest.raises(AuthenticationError):
            await RefreshSessionHandler(user_repo, issuer).handle(
                RefreshSessionCommand(refresh_token=pair.access_token)
            )

    @pytest.mark.asyncio
    async def test_deleted_user(self, user_repo, issuer, jwt_secret) -> None:
        refresh = create_refresh_token({"sub": "gone"}, jwt_secret)
        with pytest.raises(AuthenticationError, match="not found"):
            await RefreshSessionHandler(user_repo, issuer).handle(
                RefreshSessionCommand(refresh_token=refresh)
            )


# ═══════════════════════════════════════════════════════════════
#  Billing events
# ═══════════════════════════════════════════════════════════════
def grant(user_id: str, amount: int, tx_type: TransactionType, *, replayed: bool = False):
    return CreditTransaction(
        user_id=user_id,
        amount=amount,
        type=tx_type,
        idempotency_key="billing:evt",
        description="grant",
        balance_after=amount + 5,
        replayed=replayed,
    )


class TestProcessBillingEvent:
    @pytest.fixture
    def handler(self, mock_ledger, mock_event_bus) -> ProcessBillingEventHandler:
        return ProcessBillingEventHandler(mock_ledger, mock_event_bus, subscription_credits=250)

    @pytest.mark.asyncio
    async def test_checkout_credits_topup(self, handler, mock_ledger, mock_event_bus) -> None:
        mock_ledger.add_credits.return_value = grant("u1", 100, TransactionType.TOPUP)

        outcome = await handler.handle(
            ProcessBillingEventCommand(
                event_id="evt_1",
                event_type="checkout.session.completed",
                data={"metadata": {"user_id": "u1", "credits": "100"}},
            )
        )

        assert outcome.status == "credited"
        args = mock_ledger.add_credits.await_args
        assert args.args[:3] == ("u1", 100, TransactionType.TOPUP)
        assert args.kwargs["idempotency_key"] == "billing:evt_1"
        event = mock_event_bus.publish.await_args.args[0]
        assert event.amount == 100
        assert event.metadata == {"event_id": "evt_1"}

    @pytest.mark.asyncio
    async def test_invoice_grants_subscription(self, handler, mock_ledger) -> None:
        mock_ledger.add_credits.return_value = grant("u2", 250, TransactionType.SUBSCRIPTION)

        outcome = await handler.handle(
            ProcessBillingEventCommand(
                event_id="evt_2",
                event_type="invoice.paid",
                data={"client_reference_id": "u2"},
            )
        )

        assert outcome.status == "credited"
        assert mock_ledger.add_credits.await_args.args[:3] == (
            "u2",
            250,
            TransactionType.SUBSCRIPTION,
        )

    @pytest.mark.asyncio
    async def test_redelivery_is_duplicate(self, handler, mock_ledger, mock_event_bus) -> None:
        mock_ledger.add_credits.return_value = grant(
            "u1", 100, TransactionType.TOPUP, replayed=True
        )

        outcome = await handler.handle(
            ProcessBillingEventCommand(
                event_id="evt_1",
                event_type="checkout.session.completed",
                data={"metadata": {"user_id": "u1", "credits": 100}},
            )
        )

        assert outcome.status == "duplicate"
        mock_event_bus.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unrelated_event_ignored(self, handler, mock_ledger) -> None:
        outcome = await handler.handle(
            ProcessBillingEventCommand(event_id="evt_3", event_type="customer.created")
        )
        assert outcome.status == "ignored"
        mock_ledger.add_credits.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_user(self, handler, mock_ledger) -> None:
        with pytest.raises(ValidationError, match="user_id"):
            await handler.handle(
                ProcessBillingEventCommand(
                    event_id="evt_4",
                    event_type="checkout.session.completed",
                    data={"metadata": {"credits": 10}},
                )
            )
        mock_ledger.add_credits.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("credits", ["abc", 0, -5, None])
    async def test_bad_credit_amount(self, handler, credits) -> None:
        with pytest.raises(ValidationError):
            await handler.handle(
                ProcessBillingEventCommand(
                    event_id="evt_5",
                    event_type="checkout.session.completed",
                    data={"metadata": {"user_id": "u1", "credits": credits}},
                )
            )

    @pytest.mark.asyncio
    async def test_subscription_checkout_ignored(
        self, handler, mock_ledger, mock_event_bus
    ) -> None:
        outcome = await handler.handle(
            ProcessBillingEventCommand(
                event_id="evt_sub_1",
                event_type="checkout.session.completed",
                data={"mode": "subscription", "client_reference_id": "user-1"},
            )
        )

        assert outcome.status == "ignored"
        mock_ledger.add_credits.assert_not_awaited()
        mock_event_bus.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unpaid_checkout_ignored(self, handler, mock_ledger) -> None:
        outcome = await handler.handle(
            ProcessBillingEventCommand(
                event_id="evt_6",
                event_type="checkout.session.completed",
                data={
                    "mode": "payment",
                    "payment_status": "unpaid",
                    "metadata": {"user_id": "u1", "credits": 100},
                },
            )
        )

        assert outcome.status == "ignored"
        mock_ledger.add_credits.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_paid_checkout_credited(self, handler, mock_ledger) -> None:
        mock_ledger.add_credits.return_value = grant("u1", 50, TransactionType.TOPUP)

        outcome = await handler.handle(
            ProcessBillingEventCommand(
                event_id="evt_7",
                event_type="checkout.session.completed",
                data={
                    "mode": "payment",
                    "payment_status": "paid",
                    "metadata": {"user_id": "u1", "credits": 50},
                },
            )
        )

        assert outcome.status == "credited"
        mock_ledger.process_rollover.assert_not_awaited()


class TestSubscriptionRollover:
    @pytest.fixture
    def handler(self, mock_ledger, mock_event_bus) -> ProcessBillingEventHandler:
        return ProcessBillingEventHandler(mock_ledger, mock_event_bus, subscription_credits=250)

    @staticmethod
    def renewal(event_id: str = "evt_r1") -> ProcessBillingEventCommand:
        return ProcessBillingEventCommand(
            event_id=event_id,
            event_type="invoice.paid",
            data={
                "client_reference_id": "u2",
                "billing_reason": "subscription_cycle",
                "period_end": 1767225600,
            },
        )

    @pytest.mark.asyncio
    async def test_renewal_rolls_over_unused_balance(
        self, handler, mock_ledger, mock_event_bus
    ) -> None:
        mock_ledger.add_credits.return_value = grant("u2", 250, TransactionType.SUBSCRIPTION)
        mock_ledger.process_rollover.return_value = CreditTransaction(
            user_id="u2",
            amount=1,
            type=TransactionType.ROLLOVER,
            idempotency_key="rollover:u2:1767225600",
            description="Rollover of 1 unused credits",
            balance_after=256,
        )

        outcome = await handler.handle(self.renewal())

        assert outcome.status == "credited"
        assert outcome.rollover.amount == 1
        args = mock_ledger.process_rollover.await_args
        # balance before the 250 grant (grant() leaves 5 behind)
        assert args.args == ("u2", "1767225600")
        assert args.kwargs == {"unused": 5}
        published = [c.args[0] for c in mock_event_bus.publish.await_args_list]
        assert [e.transaction_type for e in published] == ["subscription", "rollover"]

    @pytest.mark.asyncio
    async def test_first_invoice_has_no_rollover(self, handler, mock_ledger) -> None:
        mock_ledger.add_credits.return_value = grant("u2", 250, TransactionType.SUBSCRIPTION)

        outcome = await handler.handle(
            ProcessBillingEventCommand(
                event_id="evt_r2",
                event_type="invoice.paid",
                data={"client_reference_id": "u2", "billing_reason": "subscription_create"},
            )
        )

        assert outcome.rollover is None
        mock_ledger.process_rollover.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redelivered_renewal_replays_rollover(
        self, handler, mock_ledger, mock_event_bus
    ) -> None:
        mock_ledger.add_credits.return_value = grant(
            "u2", 250, TransactionType.SUBSCRIPTION, replayed=True
        )
        mock_ledger.process_rollover.return_value = CreditTransaction(
            user_id="u2",
            amount=1,
            type=TransactionType.ROLLOVER,
            idempotency_key="rollover:u2:1767225600",
            description="Rollover of 1 unused credits",
            balance_after=256,
            replayed=True,
        )

        outcome = await handler.handle(self.renewal())

        assert outcome.status == "duplicate"
        assert mock_ledger.process_rollover.await_args.kwargs == {"unused": 5}
        mock_event_bus.publish.assert_not_awaited()
