from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from .config import TelegramConfig


logger = logging.getLogger(__name__)


class DeliveryFailure(str, Enum):
    SKIPPED = "skipped"
    TRANSPORT = "transport"
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    REJECTED = "rejected"


_HINTS = {
    DeliveryFailure.SKIPPED: "set telegram.token and telegram.chat_id to enable delivery",
    DeliveryFailure.TRANSPORT: "network problem or timeout reaching the Bot API; check connectivity",
    DeliveryFailure.BAD_REQUEST: "chat not found or message markup rejected; check telegram.chat_id and parse_mode",
    DeliveryFailure.UNAUTHORIZED: "bot token is invalid or revoked; check telegram.token",
    DeliveryFailure.FORBIDDEN: "bot blocked, not a member, or wrong destination type for this chat id",
    DeliveryFailure.NOT_FOUND: "Bot API endpoint not found; the token is probably malformed",
    DeliveryFailure.RATE_LIMITED: "too many messages; lengthen the report intervals",
    DeliveryFailure.SERVER_ERROR: "Bot API server error; delivery will be attempted on a later report",
    DeliveryFailure.REJECTED: "unexpected response from the Bot API",
}


def classify_status(status_code: int) -> Optional[DeliveryFailure]:
    if status_code == 200:
        return None
    if status_code == 400:
        return DeliveryFailure.BAD_REQUEST
    if status_code == 401:
        return DeliveryFailure.UNAUTHORIZED
    if status_code == 403:
        return DeliveryFailure.FORBIDDEN
    if status_code == 404:
        return DeliveryFailure.NOT_FOUND
    if status_code == 429:
        return DeliveryFailure.RATE_LIMITED
    if status_code >= 500:
        return DeliveryFailure.SERVER_ERROR
    return DeliveryFailure.REJECTED


def remediation_hint(failure: DeliveryFailure) -> str:
    return _HINTS[failure]


@dataclass(slots=True)
class DeliveryResult:
    ok: bool
    status_code: Optional[int] = None
    failure: Optional[DeliveryFailure] = None
    description: str = ""


class TelegramNotifier:
    def __init__(
        self,
        config: TelegramConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._warned_unconfigured = False
        self.sent_count = 0
        self.failed_count = 0

    @property
    def configured(self) -> bool:
        return bool(self._config.enabled and self._config.token and self._config.chat_id)

    def check_credentials(self) -> bool:
        if self.configured:
            return True
        if not self._config.enabled:
            logger.info("Telegram notifications disabled by config")
        elif not self._warned_unconfigured:
            logger.warning(
                "Telegram enabled but token/chat_id missing; notifications are off (%s)",
                remediation_hint(DeliveryFailure.SKIPPED),
            )
        self._warned_unconfigured = True
        return False

    async def send(self, text: str) -> DeliveryResult:
        if not self.configured:
            if not self._warned_unconfigured:
                self.check_credentials()
            return DeliveryResult(ok=False, failure=DeliveryFailure.SKIPPED)

        url = f"{self._config.api_base.rstrip('/')}/bot{self._config.token}/sendMessage"
        payload = {
            "chat_id": self._config.chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if self._config.parse_mode:
            payload["parse_mode"] = self._config.parse_mode

        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout_seconds, transport=self._transport
            ) as client:
                resp = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            self.failed_count += 1
            logger.error(
                "Telegram send failed (%s): %s; %s",
                DeliveryFailure.TRANSPORT.value,
                exc.__class__.__name__,
                remediation_hint(DeliveryFailure.TRANSPORT),
            )
            return DeliveryResult(ok=False, failure=DeliveryFailure.TRANSPORT, description=str(exc))

        failure = classify_status(resp.status_code)
        if failure is None:
            self.sent_count += 1
            logger.info("Telegram message delivered (%d chars)", len(text))
            return DeliveryResult(ok=True, status_code=resp.status_code)

        self.failed_count += 1
        description = _describe(resp)
        logger.error(
            "Telegram send failed (%s, HTTP %d): %s; %s",
            failure.value,
            resp.status_code,
            description,
            remediation_hint(failure),
        )
        return DeliveryResult(
            ok=False,
            status_code=resp.status_code,
            failure=failure,
            description=description,
        )


def _describe(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict) and data.get("description"):
        return str(data["description"])
    return resp.text[:200]
