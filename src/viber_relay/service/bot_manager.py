"""Bot manager: registry, liveness state machine and send dispatch.

This module provides the BotManager class, the single authority over the bots
known to this process. It loads bots from a credential store, probes them
through the Viber API client, serializes sends per bot, and publishes status
and message events to the event broadcaster.

Ordering: every probe, send, and inbound observation takes a ticket from the
bot's monotonic counter when it starts. A result is applied only if its
ticket is newer than the last applied one, so a slow, older probe can never
overwrite the outcome of a newer operation.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from viber_relay.client import ViberAPIClient
from viber_relay.exceptions import (
    AuthError,
    NotFoundError,
    RemoteRejectedError,
    RemoteUnavailableError,
    ServiceShuttingDownError,
)
from viber_relay.models import (
    AccountInfo,
    BaseOutboundMessage,
    BotCredentials,
    BotInfo,
    BotStatus,
    BotStatusInfo,
    EventTypes,
    InitializationReport,
    SendResult,
    WebhookEvent,
    parse_outbound_message,
)
from viber_relay.service.broadcaster import EventBroadcaster
from viber_relay.store import CredentialStore

# Statuses a successful send recovers from
_RECOVERABLE = frozenset({BotStatus.DEGRADED, BotStatus.UNREACHABLE})

_SENDER_NAME_MAX = 28


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _BotEntry:
    """Internal tracking entry for a registered bot."""

    def __init__(
        self,
        credentials: BotCredentials,
        status: BotStatus = BotStatus.UNKNOWN,
    ) -> None:
        self.bot_id = credentials.bot_id
        self.credentials = credentials
        self.account: AccountInfo | None = None
        self.status = status
        self.last_checked_at: datetime | None = None
        self.last_error: str | None = None
        self.last_event_at: datetime | None = None
        self.state_lock = asyncio.Lock()
        self.send_lock = asyncio.Lock()
        self.applied_ticket = 0
        self._next_ticket = 0

    def take_ticket(self) -> int:
        self._next_ticket += 1
        return self._next_ticket


class BotManager:
    """Manages registered bots for the relay service.

    One instance per process, constructed explicitly and handed to the HTTP
    and WebSocket layers.

    Example:
        manager = BotManager(
            store=FileCredentialStore("bots.yaml"),
            client=ViberAPIClient(timeout=5.0),
            broadcaster=EventBroadcaster(),
        )
        report = await manager.initialize()

        status = manager.get_bot_status("support")        # cached, no I/O
        status = await manager.refresh_bot_status("support")
        result = await manager.send_message(
            "support", {"type": "text", "receiver": "U1", "text": "hi"}
        )

        await manager.shutdown()
    """

    def __init__(
        self,
        store: CredentialStore,
        client: ViberAPIClient,
        broadcaster: EventBroadcaster | None = None,
        probe_retries: int = 0,
        retry_backoff: float = 0.1,
        shutdown_timeout: float = 10.0,
    ) -> None:
        """Initialize the BotManager.

        Args:
            store: Credential store read by initialize()
            client: Outbound Viber API client
            broadcaster: Event broadcaster (events are not published if None)
            probe_retries: Extra probe attempts after a transport failure
            retry_backoff: Base delay in seconds for exponential probe backoff
            shutdown_timeout: Seconds shutdown() waits for in-flight sends
        """
        if probe_retries < 0:
            raise ValueError("probe_retries must be non-negative")

        self._store = store
        self._client = client
        self._broadcaster = broadcaster
        self._probe_retries = probe_retries
        self._retry_backoff = retry_backoff
        self._shutdown_timeout = shutdown_timeout
        self._bots: dict[str, _BotEntry] = {}
        self._shutting_down = False
        self._closed = False
        self._inflight = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._logger = logging.getLogger(__name__)

    @property
    def broadcaster(self) -> EventBroadcaster | None:
        return self._broadcaster

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def shutdown_timeout(self) -> float:
        return self._shutdown_timeout

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> InitializationReport:
        """Load bots from the store and probe each one.

        Bots are probed concurrently and fail independently. Partial failures
        are reported, not raised.

        Returns:
            InitializationReport with the bots that did not come up active

        Raises:
            StoreUnavailableError: If the credential store cannot be read.
        """
        credentials = await self._store.list_bots()
        await self._client.connect()

        for entry_credentials in credentials:
            existing = self._bots.get(entry_credentials.bot_id)
            if existing is not None:
                existing.credentials = entry_credentials
            else:
                self._bots[entry_credentials.bot_id] = _BotEntry(
                    entry_credentials, status=BotStatus.INITIALIZING
                )

        bot_ids = list(dict.fromkeys(c.bot_id for c in credentials))
        if len(bot_ids) < len(credentials):
            self._logger.warning(
                "Credential store listed %d duplicate bot id(s); last entry wins",
                len(credentials) - len(bot_ids),
            )
        results = await asyncio.gather(
            *(self.refresh_bot_status(bot_id) for bot_id in bot_ids),
            return_exceptions=True,
        )

        report = InitializationReport(total=len(bot_ids))
        for bot_id, result in zip(bot_ids, results):
            if isinstance(result, BaseException):
                self._logger.error(
                    "Initial probe of bot %s crashed", bot_id, exc_info=result
                )
                report.failed[bot_id] = self._bots[bot_id].status
            elif result.status is BotStatus.ACTIVE:
                report.active += 1
            else:
                report.failed[bot_id] = result.status

        if report.failed:
            self._logger.warning(
                "Initialized %d/%d bots; not active: %s",
                report.active,
                report.total,
                ", ".join(f"{k}={v.value}" for k, v in report.failed.items()),
            )
        else:
            self._logger.info("Initialized %d bots, all active", report.total)
        return report

    def register_bot(self, credentials: BotCredentials) -> BotInfo:
        """Add a bot, or replace the credentials of a known one.

        New bots start as ``unknown`` until probed.
        """
        entry = self._bots.get(credentials.bot_id)
        if entry is None:
            entry = _BotEntry(credentials)
            self._bots[credentials.bot_id] = entry
            self._logger.info("Bot registered: %s", credentials.bot_id)
        else:
            entry.credentials = credentials
            self._logger.info("Bot credentials updated: %s", credentials.bot_id)
        return self._bot_info(entry)

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop accepting sends, let in-flight sends finish, close the client.

        Args:
            timeout: Seconds to wait for in-flight sends (defaults to the
                value given at construction)
        """
        self._shutting_down = True
        wait = self._shutdown_timeout if timeout is None else timeout
        self._logger.info(
            "Shutting down BotManager with %d in-flight send(s)", self._inflight
        )

        if self._inflight:
            try:
                await asyncio.wait_for(self._idle.wait(), timeout=wait)
            except asyncio.TimeoutError:
                self._logger.warning(
                    "%d send(s) still in flight after %.1fs", self._inflight, wait
                )

        self._closed = True
        await self._client.close()
        self._logger.info("BotManager shutdown complete")

    # =========================================================================
    # Queries
    # =========================================================================

    def has_bot(self, bot_id: str | None) -> bool:
        return isinstance(bot_id, str) and bot_id in self._bots

    def get_bot_status(self, bot_id: str | None) -> BotStatusInfo:
        """Return the cached status. Never performs I/O.

        Raises:
            NotFoundError: If the bot is not registered.
        """
        return self._status_info(self._require(bot_id))

    def get_bot(self, bot_id: str | None) -> BotInfo:
        """Return the public view of a bot.

        Raises:
            NotFoundError: If the bot is not registered.
        """
        return self._bot_info(self._require(bot_id))

    def list_bots(self) -> list[BotInfo]:
        return [self._bot_info(entry) for entry in self._bots.values()]

    # =========================================================================
    # Probes and sends
    # =========================================================================

    async def refresh_bot_status(self, bot_id: str | None) -> BotStatusInfo:
        """Probe the bot now and return its resulting status.

        Remote failures are folded into the status (``unreachable`` for
        transport failures, ``degraded`` for rejections such as an invalid
        token) instead of being raised.

        Raises:
            NotFoundError: If the bot is not registered.
            ServiceShuttingDownError: If the client has been closed.
        """
        entry = self._require(bot_id)
        if self._closed:
            raise ServiceShuttingDownError("Relay is shut down")
        ticket = entry.take_ticket()
        status, error, account = await self._probe(entry)
        await self._apply(entry, ticket, status, error=error, account=account)
        return self._status_info(entry)

    async def send_message(
        self, bot_id: str | None, message: dict[str, Any] | BaseOutboundMessage
    ) -> SendResult:
        """Validate and send one message through the bot.

        Sends for the same bot run one at a time; different bots send in
        parallel. A successful send recovers a ``degraded`` or
        ``unreachable`` bot to ``active``.

        Args:
            bot_id: Sending bot
            message: Raw message body or an already validated message

        Returns:
            SendResult with the remote message token

        Raises:
            NotFoundError: If the bot is not registered.
            ValidationError: If the message is invalid (nothing is sent).
            ServiceShuttingDownError: If shutdown has begun.
            RemoteRejectedError: If Viber refuses the message (status
                unchanged, except AuthError which marks the bot degraded).
            RemoteUnavailableError: On transport failure (bot marked
                unreachable).
        """
        entry = self._require(bot_id)
        parsed = parse_outbound_message(message)
        if self._shutting_down:
            raise ServiceShuttingDownError("Relay is shutting down")

        payload = parsed.to_payload()
        payload.setdefault("sender", self._default_sender(entry))

        self._inflight += 1
        self._idle.clear()
        try:
            async with entry.send_lock:
                if self._closed:
                    raise ServiceShuttingDownError(
                        "Relay shut down before the send started"
                    )
                ticket = entry.take_ticket()
                await self._client.connect()
                try:
                    response = await self._client.send_message(
                        entry.credentials.token, payload
                    )
                except AuthError as e:
                    await self._apply(entry, ticket, BotStatus.DEGRADED, error=str(e))
                    self._publish_send_error(entry.bot_id, e)
                    raise
                except RemoteRejectedError as e:
                    self._publish_send_error(entry.bot_id, e)
                    raise
                except RemoteUnavailableError as e:
                    await self._apply(
                        entry, ticket, BotStatus.UNREACHABLE, error=str(e)
                    )
                    self._publish_send_error(entry.bot_id, e)
                    raise

                await self._apply(
                    entry, ticket, BotStatus.ACTIVE, only_from=_RECOVERABLE
                )
        finally:
            self._inflight -= 1
            if self._inflight == 0:
                self._idle.set()

        result = SendResult(
            success=True,
            message_token=response.message_token,
            chat_hostname=response.chat_hostname,
        )
        self._logger.info(
            "Message sent by bot %s (%s, token=%s)",
            entry.bot_id,
            parsed.type,
            response.message_token,
        )
        self._publish(
            EventTypes.BOT_MESSAGE_SENT, entry.bot_id, result.model_dump(mode="json")
        )
        return result

    async def record_event(self, bot_id: str | None, event: WebhookEvent) -> bool:
        """Record an inbound platform callback for a bot.

        An ``unreachable`` bot becomes ``active``: the platform just reached
        us. ``degraded`` is left for the next probe to clear.

        Returns:
            False if the bot is not registered
        """
        entry = self._bots.get(bot_id) if isinstance(bot_id, str) else None
        if entry is None:
            return False

        ticket = entry.take_ticket() if entry.status is BotStatus.UNREACHABLE else None
        async with entry.state_lock:
            entry.last_event_at = _utcnow()
        if ticket is not None:
            await self._apply(
                entry,
                ticket,
                BotStatus.ACTIVE,
                only_from=frozenset({BotStatus.UNREACHABLE}),
            )
        self._logger.debug("Recorded %s event for bot %s", event.event, bot_id)
        return True

    # =========================================================================
    # Internals
    # =========================================================================

    def _require(self, bot_id: str | None) -> _BotEntry:
        entry = self._bots.get(bot_id) if isinstance(bot_id, str) else None
        if entry is None:
            raise NotFoundError(f"Bot {bot_id} not found")
        return entry

    async def _probe(
        self, entry: _BotEntry
    ) -> tuple[BotStatus, str | None, AccountInfo | None]:
        """Run the liveness probe with the configured transport retries."""
        last_error: str | None = None
        attempts = self._probe_retries + 1

        for attempt in range(attempts):
            try:
                await self._client.connect()
                account = await self._client.get_account_info(entry.credentials.token)
                return BotStatus.ACTIVE, None, account
            except RemoteRejectedError as e:
                self._logger.warning(
                    "Probe of bot %s rejected (status=%s): %s",
                    entry.bot_id,
                    e.status,
                    e,
                )
                return BotStatus.DEGRADED, str(e), None
            except RemoteUnavailableError as e:
                last_error = str(e)
                self._logger.warning(
                    "Probe of bot %s failed (attempt %d/%d): %s",
                    entry.bot_id,
                    attempt + 1,
                    attempts,
                    e,
                )

            if attempt < attempts - 1:
                await asyncio.sleep(2**attempt * self._retry_backoff)

        return BotStatus.UNREACHABLE, last_error, None

    async def _apply(
        self,
        entry: _BotEntry,
        ticket: int,
        status: BotStatus,
        *,
        error: str | None = None,
        account: AccountInfo | None = None,
        only_from: frozenset[BotStatus] | None = None,
    ) -> bool:
        """Apply an operation's outcome unless a newer one already landed.

        Args:
            entry: Bot to update
            ticket: Ticket taken when the operation started
            status: Status the outcome implies
            error: Error text to record with the status
            account: Fresh account info from a successful probe
            only_from: If given, change status only from one of these

        Returns:
            True if the outcome was applied, False if it was stale
        """
        async with entry.state_lock:
            if ticket <= entry.applied_ticket:
                self._logger.debug(
                    "Discarding stale result #%d for bot %s (latest #%d)",
                    ticket,
                    entry.bot_id,
                    entry.applied_ticket,
                )
                return False

            entry.applied_ticket = ticket
            entry.last_checked_at = _utcnow()
            if account is not None:
                entry.account = account
            previous = entry.status
            if only_from is None or previous in only_from:
                entry.status = status
                entry.last_error = error
            info = self._status_info(entry)

        if previous is not info.status:
            self._logger.info(
                "Bot %s status %s -> %s", entry.bot_id, previous.value, info.status.value
            )
        self._publish(
            EventTypes.BOT_STATUS_UPDATE,
            entry.bot_id,
            info.model_dump(mode="json", by_alias=True),
        )
        return True

    def _default_sender(self, entry: _BotEntry) -> dict[str, str]:
        name = entry.credentials.name
        if not name and entry.account is not None:
            name = entry.account.name
        sender = {"name": (name or entry.bot_id)[:_SENDER_NAME_MAX]}
        avatar = entry.credentials.avatar
        if not avatar and entry.account is not None:
            avatar = entry.account.icon
        if avatar:
            sender["avatar"] = avatar
        return sender

    def _publish(self, event: str, bot_id: str, data: dict[str, Any]) -> None:
        if self._broadcaster is not None:
            self._broadcaster.publish(event, bot_id, data)

    def _publish_send_error(self, bot_id: str, error: Exception) -> None:
        data: dict[str, Any] = {"message": "Failed to send message", "detail": str(error)}
        if isinstance(error, RemoteRejectedError):
            data["details"] = error.detail
        self._publish(EventTypes.ERROR, bot_id, data)

    def _status_info(self, entry: _BotEntry) -> BotStatusInfo:
        return BotStatusInfo(
            bot_id=entry.bot_id,
            status=entry.status,
            last_checked_at=entry.last_checked_at,
            last_error=entry.last_error,
        )

    def _bot_info(self, entry: _BotEntry) -> BotInfo:
        account = entry.account
        return BotInfo(
            bot_id=entry.bot_id,
            name=(account.name if account else None) or entry.credentials.name,
            uri=account.uri if account else None,
            icon=(account.icon if account else None) or entry.credentials.avatar,
            webhook=account.webhook if account else None,
            subscribers_count=account.subscribers_count if account else None,
            status=entry.status,
            last_checked_at=entry.last_checked_at,
            last_event_at=entry.last_event_at,
        )
