"""Channel-membership oracle backed by the Telegram Bot API."""

from typing import Protocol

import httpx

from w2e.core.config import Settings
from w2e.core.exceptions import UnavailableError
from w2e.core.logging import get_logger

log = get_logger(__name__)

MEMBER_STATUSES = frozenset({"member", "administrator", "creator", "restricted"})
NOT_MEMBER_DESCRIPTIONS = ("user not found", "participant_id_invalid", "user_id_invalid")


class ChannelChecker(Protocol):
    async def is_member(self, external_id: int) -> bool:
        """True/False for a definite answer; raise UnavailableError when unknown."""
        ...


class TelegramChannelChecker:
    def __init__(
        self,
        bot_token: str,
        chat_id: str | None,
        api_base: str = "https://api.telegram.org",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "TelegramChannelChecker":
        if settings.channel_id:
            chat_id = str(settings.channel_id)
        elif settings.channel_username:
            chat_id = "@" + settings.channel_username.lstrip("@")
        else:
            chat_id = None
        return cls(settings.bot_token, chat_id, settings.telegram_api_base)

    async def is_member(self, external_id: int) -> bool:
        if not self.chat_id or not self.bot_token:
            raise UnavailableError("Channel check not configured")
        url = f"{self.api_base}/bot{self.bot_token}/getChatMember"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, params={"chat_id": self.chat_id, "user_id": external_id})
        except httpx.HTTPError as e:
            log.warning("channel_check_failed", external_id=external_id, reason=str(e))
            raise UnavailableError("Channel check failed, try again") from e
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code == 400 and not data.get("ok", False):
            description = str(data.get("description", "")).lower()
            # Users who never joined come back as 400 "user not found".
            if any(marker in description for marker in NOT_MEMBER_DESCRIPTIONS):
                return False
            log.warning("channel_check_failed", external_id=external_id, status_code=400, description=description)
            raise UnavailableError("Channel check failed, try again")
        if resp.status_code != 200 or not data.get("ok", False):
            log.warning("channel_check_failed", external_id=external_id, status_code=resp.status_code)
            raise UnavailableError("Channel check failed, try again")
        status = (data.get("result") or {}).get("status")
        return status in MEMBER_STATUSES
