"""
Emergency notification delivery.

Key patterns:
- Protocol-based channels, selected once at startup and injected
- Live SMS delivery over the Twilio REST API with httpx
- Log-only stub when credentials are incomplete
- The dispatcher never raises; delivery failures are logged and reported
  as a DeliveryStatus
"""

from collections import deque
from enum import Enum
from typing import Protocol

import httpx
import structlog

from core.config import NotificationConfig
from core.services.errors import DeliveryError

logger = structlog.get_logger(__name__)


class DeliveryStatus(str, Enum):
    """What happened to a single dispatch call."""

    SENT = "sent"
    STUBBED = "stubbed"
    SKIPPED = "skipped"  # no contact on file
    FAILED = "failed"


class NotificationChannel(Protocol):
    """A way of getting a text message to a recipient."""

    name: str

    async def send(self, to: str, body: str) -> None:
        """Deliver ``body`` to ``to``. Raises DeliveryError on failure."""
        ...


class LiveChannel:
    """
    SMS delivery through the Twilio Messages endpoint.

    Pass ``http_client`` to reuse a pre-configured client (or a mock
    transport in tests); otherwise a client is opened per message.
    """

    name = "live"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        base_url: str = "https://api.twilio.com",
        timeout_seconds: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.account_sid = account_sid
        self._auth_token = auth_token
        self.from_number = from_number
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client
        self.logger = logger.bind(component="live_channel")

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/2010-04-01/Accounts/{self.account_sid}/Messages.json"

    async def _post(self, client: httpx.AsyncClient, to: str, body: str) -> httpx.Response:
        return await client.post(
            self.messages_url,
            data={"To": to, "From": self.from_number, "Body": body},
            auth=(self.account_sid, self._auth_token),
            timeout=self.timeout_seconds,
        )

    async def send(self, to: str, body: str) -> None:
        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, to, body)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, to, body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DeliveryError(
                f"SMS provider rejected message: HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise DeliveryError(f"SMS request failed: {e}") from e

        self.logger.info("sms_sent", to=to)


class StubChannel:
    """Log-only channel used when SMS credentials are not configured."""

    name = "stub"

    def __init__(self, history_size: int = 1000) -> None:
        self.attempts: deque[tuple[str, str]] = deque(maxlen=history_size)
        self.logger = logger.bind(component="stub_channel")

    async def send(self, to: str, body: str) -> None:
        self.attempts.append((to, body))
        self.logger.info("sms_stub", to=to, body=body)


def build_channel(
    config: NotificationConfig, http_client: httpx.AsyncClient | None = None
) -> NotificationChannel:
    """Pick the live channel when all credentials are present, else the stub."""
    if config.live_enabled:
        logger.info("notification_channel_selected", channel="live")
        return LiveChannel(
            account_sid=config.account_sid,  # type: ignore[arg-type]
            auth_token=config.auth_token,  # type: ignore[arg-type]
            from_number=config.from_number,  # type: ignore[arg-type]
            base_url=config.base_url,
            timeout_seconds=config.timeout_seconds,
            http_client=http_client,
        )

    logger.info("notification_channel_selected", channel="stub")
    return StubChannel()


def format_body(subject_name: str, message: str) -> str:
    return f"Emergency for {subject_name}: {message}"


class NotificationDispatcher:
    """Sends one emergency message per call, containing every failure."""

    def __init__(self, channel: NotificationChannel) -> None:
        self.channel = channel
        self.logger = logger.bind(component="notification_dispatcher", channel=channel.name)

    async def dispatch(
        self, contact: str | None, subject_name: str, message: str
    ) -> DeliveryStatus:
        if contact is None:
            self.logger.info("notification_skipped_no_contact", subject=subject_name)
            return DeliveryStatus.SKIPPED

        self.logger.info("notifying_emergency_contact", contact=contact, subject=subject_name)

        try:
            await self.channel.send(contact, format_body(subject_name, message))
        except DeliveryError as e:
            self.logger.error(
                "notification_failed", contact=contact, error=str(e), status_code=e.status_code
            )
            return DeliveryStatus.FAILED
        except Exception as e:
            self.logger.exception("notification_failed", contact=contact, error=str(e))
            return DeliveryStatus.FAILED

        return DeliveryStatus.STUBBED if self.channel.name == StubChannel.name else DeliveryStatus.SENT
