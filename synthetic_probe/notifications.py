from __future__ import annotations

import json
from dataclasses import dataclass

import httpx
import structlog


logger = structlog.get_logger(__name__)

TELEGRAM_MAX_MESSAGE_LEN = 3900


@dataclass(frozen=True)
class TelegramConfig:
    bot_token: str
    chat_id: str


def split_telegram_message(text: str, *, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> list[str]:
    s = (text or "").strip()
    if not s:
        return [""]

    max_len = max(1, int(max_len))
    parts: list[str] = []
    while s:
        if len(s) <= max_len:
            parts.append(s)
            break
        cut = s.rfind("\n", 0, max_len + 1)
        if cut < max_len * 0.6:
            cut = max_len
        parts.append(s[:cut].rstrip())
        s = s[cut:].lstrip()
    return parts


def redact_telegram_response(data: dict) -> str:
    safe = {"ok": data.get("ok")}
    if isinstance(data.get("result"), dict):
        safe["result"] = {"message_id": data["result"].get("message_id")}
    if data.get("error"):
        safe["error"] = data.get("error")
    return json.dumps(safe, ensure_ascii=False)


class Notifier:
    """Sends probe notifications to Telegram, or only logs them without credentials."""

    def __init__(self, http: httpx.AsyncClient, config: TelegramConfig | None = None) -> None:
        self._http = http
        self._config = config

    @property
    def enabled(self) -> bool:
        return self._config is not None

    async def _send_one(self, config: TelegramConfig, text: str) -> tuple[bool, dict]:
        url = f"https://api.telegram.org/bot{config.bot_token}/sendMessage"
        try:
            resp = await self._http.post(url, json={"chat_id": config.chat_id, "text": text}, timeout=15.0)
            data = resp.json()
            return bool(data.get("ok")), data
        except (httpx.HTTPError, ValueError) as e:
            msg = f"{type(e).__name__}: {e}".replace(config.bot_token, "<redacted>")
            return False, {"ok": False, "error": msg}

    async def send(self, text: str) -> bool:
        logger.info("Notification", text=text)
        config = self._config
        if config is None:
            return False
        ok_all = True
        for part in split_telegram_message(text):
            ok, data = await self._send_one(config, part)
            if not ok:
                logger.warning("Telegram send failed", response=redact_telegram_response(data))
            ok_all = ok_all and ok
        return ok_all
