"""Unit tests for BotManager.

Tests cover:
- initialize() with all, some, and no bots coming up active
- initialize() aborting on an unavailable credential store
- get_bot_status() served from cache without remote calls
- refresh_bot_status() status transitions and probe retries
- Out-of-order probe results never overwrite newer outcomes
- send_message() validation, default sender, and error mapping
- Per-bot send serialization and cross-bot parallelism
- record_event() observations
- shutdown() draining in-flight sends
"""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import make_account, make_send_response

from viber_relay.exceptions import (
    AuthError,
    NotFoundError,
    RemoteRejectedError,
    RemoteUnavailableError,
    ServiceShuttingDownError,
    StoreUnavailableError,
    ValidationError,
)
from viber_relay.models import (
    BotCredentials,
    BotStatus,
    EventTypes,
    SendResult,
    TextMessage,
    WebhookEvent,
)
from viber_relay.service.bot_manager import BotManager
from viber_relay.service.broadcaster import EventBroadcaster
from viber_relay.store import InMemoryCredentialStore

TEXT = {"type": "text", "receiver": "01234567890A=", "text": "Hello"}


def _manager(
    client: MagicMock, *bots: BotCredentials, **kwargs: Any
) -> BotManager:
    return BotManager(store=InMemoryCredentialStore(bots), client=client, **kwargs)


def _published(broadcaster: MagicMock, event: str) -> list[tuple[str, dict]]:
    """Return (bot_id, data) for every publish of ``event``."""
    return [
        (call.args[1], call.args[2])
        for call in broadcaster.publish.call_args_list
        if call.args[0] == event
    ]


class TestBotManagerInit:
    """Tests for BotManager construction."""

    def test_starts_empty(self, mock_client: MagicMock) -> None:
        """Test a new manager has no bots and is not shutting down."""
        manager = _manager(mock_client)
        assert manager.list_bots() == []
        assert manager.is_shutting_down is False
        assert manager.broadcaster is None

    def test_negative_retries_rejected(self, mock_client: MagicMock) -> None:
        """Test probe_retries must be non-negative."""
        with pytest.raises(ValueError):
            _manager(mock_client, probe_retries=-1)


class TestInitialize:
    """Tests for initialize()."""

    @pytest.mark.asyncio
    async def test_all_bots_active(
        self,
        mock_client: MagicMock,
        credentials: BotCredentials,
        other_credentials: BotCredentials,
    ) -> None:
        """Test every bot is probed and ends active."""
        manager = _manager(mock_client, credentials, other_credentials)

        report = await manager.initialize()

        assert report.total == 2
        assert report.active == 2
        assert report.failed == {}
        assert mock_client.get_account_info.await_count == 2
        assert manager.get_bot_status("support").status is BotStatus.ACTIVE
        assert manager.get_bot_status("sales").status is BotStatus.ACTIVE
        assert manager.get_bot("support").subscribers_count == 12

    @pytest.mark.asyncio
    async def test_partial_failure_is_reported(
        self,
        mock_client: MagicMock,
        credentials: BotCredentials,
        other_credentials: BotCredentials,
    ) -> None:
        """Test one failing bot does not stop the others."""
        bad = BotCredentials(bot_id="broken", token="bad-token")

        async def probe(token: Any) -> Any:
            value = token.get_secret_value()
            if value == "bad-token":
                raise AuthError("Viber rejected request: invalidAuthToken", status=2)
            if value == "sales-token-0001":
                raise RemoteUnavailableError("Request timeout: read timed out")
            return make_account()

        mock_client.get_account_info.side_effect = probe
        manager = _manager(mock_client, credentials, other_credentials, bad)

        report = await manager.initialize()

        assert report.total == 3
        assert report.active == 1
        assert report.failed == {
            "sales": BotStatus.UNREACHABLE,
            "broken": BotStatus.DEGRADED,
        }
        assert manager.get_bot_status("support").status is BotStatus.ACTIVE
        assert manager.get_bot_status("broken").last_error is not None

    @pytest.mark.asyncio
    async def test_store_unavailable_propagates(self, mock_client: MagicMock) -> None:
        """Test an unreadable store aborts initialization."""
        store = MagicMock()
        store.list_bots = AsyncMock(side_effect=StoreUnavailableError("no file"))
        manager = BotManager(store=store, client=mock_client)

        with pytest.raises(StoreUnavailableError):
            await manager.initialize()

        mock_client.get_account_info.assert_not_awaited()
        assert manager.list_bots() == []

    @pytest.mark.asyncio
    async def test_empty_store(self, mock_client: MagicMock) -> None:
        """Test an empty store initializes with nothing to probe."""
        report = await _manager(mock_client).initialize()
        assert report.total == 0
        assert report.active == 0

    @pytest.mark.asyncio
    async def test_duplicate_bot_ids_checked_once(self, mock_client: MagicMock) -> None:
        """Test a bot listed twice is probed once with its last credentials."""
        manager = _manager(
            mock_client,
            BotCredentials(bot_id="support", token="old-token", name="Old"),
            BotCredentials(bot_id="support", token="new-token", name="New"),
        )

        report = await manager.initialize()

        assert report.total == 1
        assert report.active == 1
        [call] = mock_client.get_account_info.await_args_list
        assert call.args[0].get_secret_value() == "new-token"
        assert len(manager.list_bots()) == 1


class TestQueries:
    """Tests for get_bot_status(), get_bot(), list_bots(), register_bot()."""

    @pytest.mark.asyncio
    async def test_get_bot_status_makes_no_remote_call(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test status reads come from the cache."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()
        mock_client.reset_mock()

        for _ in range(5):
            info = manager.get_bot_status("support")

        assert info.status is BotStatus.ACTIVE
        assert info.last_checked_at is not None
        mock_client.get_account_info.assert_not_called()
        mock_client.send_message.assert_not_called()

    def test_unknown_bot(self, mock_client: MagicMock) -> None:
        """Test unknown and missing bot ids raise NotFoundError."""
        manager = _manager(mock_client)
        with pytest.raises(NotFoundError):
            manager.get_bot_status("nope")
        with pytest.raises(NotFoundError):
            manager.get_bot_status(None)
        with pytest.raises(NotFoundError):
            manager.get_bot("nope")
        assert manager.has_bot(None) is False

    def test_non_string_bot_id(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test unhashable bot ids are treated as unknown."""
        manager = _manager(mock_client)
        manager.register_bot(credentials)

        with pytest.raises(NotFoundError):
            manager.get_bot_status(["support"])  # type: ignore[arg-type]
        assert manager.has_bot(["support"]) is False  # type: ignore[arg-type]

    def test_register_bot_starts_unknown(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a registered bot is unknown until probed."""
        manager = _manager(mock_client)
        info = manager.register_bot(credentials)

        assert info.bot_id == "support"
        assert info.status is BotStatus.UNKNOWN
        assert info.name == "Support"
        assert manager.has_bot("support")
        mock_client.get_account_info.assert_not_called()

    def test_register_bot_replaces_credentials(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test re-registering keeps one entry with the new credentials."""
        manager = _manager(mock_client)
        manager.register_bot(credentials)
        manager.register_bot(BotCredentials(bot_id="support", token="new", name="New"))

        assert len(manager.list_bots()) == 1
        assert manager.get_bot("support").name == "New"

    @pytest.mark.asyncio
    async def test_bot_info_never_carries_token(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test the public bot view has no token field."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()
        dumped = manager.get_bot("support").model_dump_json(by_alias=True)
        assert credentials.token.get_secret_value() not in dumped
        assert "token" not in manager.get_bot("support").model_dump()


class TestRefreshBotStatus:
    """Tests for refresh_bot_status()."""

    @pytest.mark.asyncio
    async def test_rejection_marks_degraded(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a rejected probe degrades the bot instead of raising."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()
        mock_client.get_account_info.side_effect = AuthError(
            "Viber rejected request: invalidAuthToken", status=2
        )

        info = await manager.refresh_bot_status("support")

        assert info.status is BotStatus.DEGRADED
        assert "invalidAuthToken" in info.last_error

    @pytest.mark.asyncio
    async def test_transport_failure_marks_unreachable(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a transport failure makes the bot unreachable."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()
        mock_client.get_account_info.side_effect = RemoteUnavailableError("refused")

        info = await manager.refresh_bot_status("support")

        assert info.status is BotStatus.UNREACHABLE
        assert info.last_error == "refused"

    @pytest.mark.asyncio
    async def test_probe_timeout_visible_to_next_status_read(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a healthy bot that then times out reads back as unreachable."""
        manager = _manager(mock_client)
        manager.register_bot(credentials)

        first = await manager.refresh_bot_status("support")
        assert first.status is BotStatus.ACTIVE

        mock_client.get_account_info.side_effect = RemoteUnavailableError(
            "Request timeout: timed out"
        )
        second = await manager.refresh_bot_status("support")
        assert second.status is BotStatus.UNREACHABLE

        assert manager.get_bot_status("support").status is BotStatus.UNREACHABLE

    @pytest.mark.asyncio
    async def test_recovery_clears_error(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a successful probe after a failure restores active."""
        manager = _manager(mock_client, credentials)
        mock_client.get_account_info.side_effect = RemoteUnavailableError("refused")
        await manager.initialize()

        mock_client.get_account_info.side_effect = None
        info = await manager.refresh_bot_status("support")

        assert info.status is BotStatus.ACTIVE
        assert info.last_error is None

    @pytest.mark.asyncio
    async def test_unknown_bot(self, mock_client: MagicMock) -> None:
        """Test refreshing an unknown bot raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await _manager(mock_client).refresh_bot_status("nope")

    @pytest.mark.asyncio
    async def test_probe_retries_transport_failures(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test transport failures are retried up to probe_retries times."""
        mock_client.get_account_info.side_effect = [
            RemoteUnavailableError("refused"),
            make_account(),
        ]
        manager = _manager(mock_client, credentials, probe_retries=1, retry_backoff=0)
        manager.register_bot(credentials)

        info = await manager.refresh_bot_status("support")

        assert info.status is BotStatus.ACTIVE
        assert mock_client.get_account_info.await_count == 2

    @pytest.mark.asyncio
    async def test_rejections_are_not_retried(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a rejection ends the probe immediately."""
        mock_client.get_account_info.side_effect = RemoteRejectedError(
            "Viber rejected request: publicAccountSuspended", status=9
        )
        manager = _manager(mock_client, probe_retries=3, retry_backoff=0)
        manager.register_bot(credentials)

        info = await manager.refresh_bot_status("support")

        assert info.status is BotStatus.DEGRADED
        assert mock_client.get_account_info.await_count == 1

    @pytest.mark.asyncio
    async def test_status_update_published(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test every applied probe publishes bot:status:update."""
        broadcaster = MagicMock(spec=EventBroadcaster)
        manager = _manager(mock_client, broadcaster=broadcaster)
        manager.register_bot(credentials)

        await manager.refresh_bot_status("support")

        [(bot_id, data)] = _published(broadcaster, EventTypes.BOT_STATUS_UPDATE)
        assert bot_id == "support"
        assert data["botId"] == "support"
        assert data["status"] == "active"
        assert data["lastCheckedAt"] is not None


@pytest.mark.concurrency
class TestOrdering:
    """Tests for out-of-order result handling."""

    @pytest.mark.asyncio
    async def test_slow_old_probe_does_not_overwrite_newer(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test an older probe finishing last is discarded."""
        release_first = asyncio.Event()
        calls = 0

        async def probe(token: Any) -> Any:
            nonlocal calls
            calls += 1
            if calls == 1:
                await release_first.wait()
                raise RemoteUnavailableError("timed out")
            return make_account()

        mock_client.get_account_info.side_effect = probe
        manager = _manager(mock_client)
        manager.register_bot(credentials)

        first = asyncio.create_task(manager.refresh_bot_status("support"))
        await asyncio.sleep(0)

        second = await manager.refresh_bot_status("support")
        assert second.status is BotStatus.ACTIVE

        release_first.set()
        first_result = await first

        assert first_result.status is BotStatus.ACTIVE
        assert manager.get_bot_status("support").status is BotStatus.ACTIVE
        assert manager.get_bot_status("support").last_error is None

    @pytest.mark.asyncio
    async def test_probe_started_before_send_is_discarded(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a probe failure older than a successful send is discarded."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        release_probe = asyncio.Event()

        async def slow_failure(token: Any) -> Any:
            await release_probe.wait()
            raise RemoteUnavailableError("timed out")

        mock_client.get_account_info.side_effect = slow_failure
        probe = asyncio.create_task(manager.refresh_bot_status("support"))
        await asyncio.sleep(0)

        await manager.send_message("support", TEXT)
        release_probe.set()
        await probe

        assert manager.get_bot_status("support").status is BotStatus.ACTIVE


class TestSendMessage:
    """Tests for send_message()."""

    @pytest.mark.asyncio
    async def test_send_success(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a valid message is sent and the token returned."""
        broadcaster = MagicMock(spec=EventBroadcaster)
        manager = _manager(mock_client, credentials, broadcaster=broadcaster)
        await manager.initialize()

        result = await manager.send_message("support", TEXT)

        assert result == SendResult(
            success=True,
            message_token=5741311803571721087,
            chat_hostname="SN-CHAT-05_",
        )
        token, payload = mock_client.send_message.await_args.args
        assert token.get_secret_value() == credentials.token.get_secret_value()
        assert payload["type"] == "text"
        assert payload["text"] == "Hello"
        assert manager.get_bot_status("support").status is BotStatus.ACTIVE

        [(bot_id, data)] = _published(broadcaster, EventTypes.BOT_MESSAGE_SENT)
        assert bot_id == "support"
        assert data["success"] is True
        assert data["message_token"] == 5741311803571721087

    @pytest.mark.asyncio
    async def test_accepts_message_model(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test an already built message model can be sent."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        await manager.send_message("support", TextMessage(receiver="U1", text="hi"))

        payload = mock_client.send_message.await_args.args[1]
        assert payload["receiver"] == "U1"

    @pytest.mark.asyncio
    async def test_invalid_type_not_sent(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test an unsupported type raises ValidationError without a remote call."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        with pytest.raises(ValidationError):
            await manager.send_message(
                "support", {"type": "carousel", "receiver": "U1"}
            )

        mock_client.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_field_not_sent(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a schema violation raises ValidationError without a remote call."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        with pytest.raises(ValidationError):
            await manager.send_message("support", {"type": "picture", "receiver": "U1"})

        mock_client.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_bot(self, mock_client: MagicMock) -> None:
        """Test sending through an unknown bot raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await _manager(mock_client).send_message("nope", TEXT)
        mock_client.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_default_sender_from_credentials(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test the configured bot name is used as sender."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        await manager.send_message("support", TEXT)

        payload = mock_client.send_message.await_args.args[1]
        assert payload["sender"] == {
            "name": "Support",
            "avatar": "https://example.com/icon.png",
        }

    @pytest.mark.asyncio
    async def test_default_sender_from_account_truncated(
        self, mock_client: MagicMock, other_credentials: BotCredentials
    ) -> None:
        """Test the account name is used and cut to 28 characters."""
        mock_client.get_account_info.return_value = make_account(
            name="A very long public account name indeed", icon=None
        )
        manager = _manager(mock_client, other_credentials)
        await manager.initialize()

        await manager.send_message("sales", TEXT)

        payload = mock_client.send_message.await_args.args[1]
        assert payload["sender"] == {"name": "A very long public account n"}
        assert len(payload["sender"]["name"]) == 28

    @pytest.mark.asyncio
    async def test_default_sender_falls_back_to_bot_id(
        self, mock_client: MagicMock, other_credentials: BotCredentials
    ) -> None:
        """Test the bot id names the sender when nothing else does."""
        manager = _manager(mock_client)
        manager.register_bot(other_credentials)

        await manager.send_message("sales", TEXT)

        payload = mock_client.send_message.await_args.args[1]
        assert payload["sender"] == {"name": "sales"}

    @pytest.mark.asyncio
    async def test_explicit_sender_kept(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a caller-supplied sender is not replaced."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        await manager.send_message("support", {**TEXT, "sender": {"name": "Agent"}})

        payload = mock_client.send_message.await_args.args[1]
        assert payload["sender"] == {"name": "Agent"}

    @pytest.mark.asyncio
    async def test_rejection_leaves_status_unchanged(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a refused message raises without degrading the bot."""
        broadcaster = MagicMock(spec=EventBroadcaster)
        manager = _manager(mock_client, credentials, broadcaster=broadcaster)
        await manager.initialize()
        body = {"status": 7, "status_message": "publicAccountBlocked"}
        mock_client.send_message.side_effect = RemoteRejectedError(
            "Viber rejected request: publicAccountBlocked",
            status=7,
            status_message="publicAccountBlocked",
            detail=body,
        )

        with pytest.raises(RemoteRejectedError) as exc_info:
            await manager.send_message("support", TEXT)

        assert exc_info.value.status == 7
        assert manager.get_bot_status("support").status is BotStatus.ACTIVE
        [(bot_id, data)] = _published(broadcaster, EventTypes.ERROR)
        assert bot_id == "support"
        assert data["details"] == body

    @pytest.mark.asyncio
    async def test_auth_error_degrades(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test an invalid token on send degrades the bot."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()
        mock_client.send_message.side_effect = AuthError(
            "Viber rejected request: invalidAuthToken", status=2
        )

        with pytest.raises(AuthError):
            await manager.send_message("support", TEXT)

        assert manager.get_bot_status("support").status is BotStatus.DEGRADED

    @pytest.mark.asyncio
    async def test_transport_failure_marks_unreachable(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a transport failure on send marks the bot unreachable."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()
        mock_client.send_message.side_effect = RemoteUnavailableError("refused")

        with pytest.raises(RemoteUnavailableError):
            await manager.send_message("support", TEXT)

        info = manager.get_bot_status("support")
        assert info.status is BotStatus.UNREACHABLE
        assert info.last_error == "refused"

    @pytest.mark.asyncio
    async def test_success_recovers_unreachable(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a successful send brings an unreachable bot back to active."""
        mock_client.get_account_info.side_effect = RemoteUnavailableError("refused")
        manager = _manager(mock_client, credentials)
        await manager.initialize()
        assert manager.get_bot_status("support").status is BotStatus.UNREACHABLE

        await manager.send_message("support", TEXT)

        info = manager.get_bot_status("support")
        assert info.status is BotStatus.ACTIVE
        assert info.last_error is None

    @pytest.mark.asyncio
    async def test_success_does_not_promote_unknown(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a send does not stand in for a probe of a never-probed bot."""
        manager = _manager(mock_client)
        manager.register_bot(credentials)

        await manager.send_message("support", TEXT)

        assert manager.get_bot_status("support").status is BotStatus.UNKNOWN


@pytest.mark.concurrency
class TestSendConcurrency:
    """Tests for per-bot serialization and cross-bot parallelism."""

    @pytest.mark.asyncio
    async def test_sends_for_one_bot_are_serialized(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test at most one send per bot is in flight at a time."""
        active = 0
        peak = 0

        async def send(token: Any, payload: dict) -> Any:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return make_send_response()

        mock_client.send_message.side_effect = send
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        results = await asyncio.gather(
            *(manager.send_message("support", TEXT) for _ in range(5))
        )

        assert all(r.success for r in results)
        assert peak == 1

    @pytest.mark.asyncio
    async def test_different_bots_send_in_parallel(
        self,
        mock_client: MagicMock,
        credentials: BotCredentials,
        other_credentials: BotCredentials,
    ) -> None:
        """Test a slow send on one bot does not block another bot."""
        both_entered = asyncio.Event()
        entered = 0

        async def send(token: Any, payload: dict) -> Any:
            nonlocal entered
            entered += 1
            if entered == 2:
                both_entered.set()
            await asyncio.wait_for(both_entered.wait(), timeout=1.0)
            return make_send_response()

        mock_client.send_message.side_effect = send
        manager = _manager(mock_client, credentials, other_credentials)
        await manager.initialize()

        await asyncio.gather(
            manager.send_message("support", TEXT),
            manager.send_message("sales", TEXT),
        )

        assert entered == 2


class TestRecordEvent:
    """Tests for record_event()."""

    @pytest.mark.asyncio
    async def test_unknown_bot(self, mock_client: MagicMock) -> None:
        """Test events for unregistered bots are not recorded."""
        manager = _manager(mock_client)
        assert await manager.record_event("nope", WebhookEvent(event="seen")) is False
        assert await manager.record_event(None, WebhookEvent(event="seen")) is False

    @pytest.mark.asyncio
    async def test_sets_last_event_at(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test an event records its arrival time."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        assert await manager.record_event("support", WebhookEvent(event="seen"))

        assert manager.get_bot("support").last_event_at is not None
        assert manager.get_bot_status("support").status is BotStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_recovers_unreachable(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test an inbound event brings an unreachable bot back to active."""
        mock_client.get_account_info.side_effect = RemoteUnavailableError("refused")
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        await manager.record_event("support", WebhookEvent(event="delivered"))

        assert manager.get_bot_status("support").status is BotStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_leaves_degraded(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test an inbound event does not clear a degraded bot."""
        mock_client.get_account_info.side_effect = AuthError("bad token", status=2)
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        await manager.record_event("support", WebhookEvent(event="delivered"))

        assert manager.get_bot_status("support").status is BotStatus.DEGRADED


class TestShutdown:
    """Tests for shutdown()."""

    @pytest.mark.asyncio
    async def test_rejects_new_sends(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test sends after shutdown raise ServiceShuttingDownError."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        await manager.shutdown()

        assert manager.is_shutting_down
        mock_client.close.assert_awaited_once()
        with pytest.raises(ServiceShuttingDownError):
            await manager.send_message("support", TEXT)
        mock_client.send_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_waits_for_inflight_send(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test shutdown lets an in-flight send finish before closing."""
        release = asyncio.Event()

        async def send(token: Any, payload: dict) -> Any:
            await release.wait()
            return make_send_response()

        mock_client.send_message.side_effect = send
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        sending = asyncio.create_task(manager.send_message("support", TEXT))
        await asyncio.sleep(0)
        stopping = asyncio.create_task(manager.shutdown(timeout=1.0))
        await asyncio.sleep(0)

        assert not stopping.done()
        mock_client.close.assert_not_awaited()

        release.set()
        result = await sending
        await stopping

        assert result.success
        mock_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_bounds_wait(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test shutdown gives up on a stuck send after the timeout."""
        never = asyncio.Event()

        async def send(token: Any, payload: dict) -> Any:
            await never.wait()

        mock_client.send_message.side_effect = send
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        sending = asyncio.create_task(manager.send_message("support", TEXT))
        await asyncio.sleep(0)

        await manager.shutdown(timeout=0.01)

        mock_client.close.assert_awaited_once()
        sending.cancel()
        await asyncio.gather(sending, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_queued_send_does_not_reopen_client(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test a send queued behind the lock fails once the client is closed."""
        release = asyncio.Event()

        async def send(token: Any, payload: dict) -> Any:
            await release.wait()
            return make_send_response()

        mock_client.send_message.side_effect = send
        manager = _manager(mock_client, credentials)
        await manager.initialize()

        first = asyncio.create_task(manager.send_message("support", TEXT))
        queued = asyncio.create_task(manager.send_message("support", TEXT))
        await asyncio.sleep(0)

        await manager.shutdown(timeout=0.01)
        connects = mock_client.connect.await_count

        release.set()
        results = await asyncio.gather(first, queued, return_exceptions=True)

        assert results[0].success
        assert isinstance(results[1], ServiceShuttingDownError)
        assert mock_client.connect.await_count == connects
        assert mock_client.send_message.await_count == 1

    @pytest.mark.asyncio
    async def test_refresh_after_shutdown(
        self, mock_client: MagicMock, credentials: BotCredentials
    ) -> None:
        """Test probes are refused once the client is closed."""
        manager = _manager(mock_client, credentials)
        await manager.initialize()
        mock_client.get_account_info.reset_mock()

        await manager.shutdown()

        with pytest.raises(ServiceShuttingDownError):
            await manager.refresh_bot_status("support")
        mock_client.get_account_info.assert_not_called()
