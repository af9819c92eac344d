from __future__ import annotations

import json
import logging
from http.client import HTTPException
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from video_digest.errors import RemoteCallError
from video_digest.services.common import as_dict

LOGGER = logging.getLogger("video_digest.slack")


class SlackNotifier:
    def __init__(
        self,
        *,
        base_url: str = "https://slack.com/api",
        http_timeout_seconds: float = 30.0,
    ) -> None:
        self._post_message_url = f"{base_url.rstrip('/')}/chat.postMessage"
        self._http_timeout_seconds = float(http_timeout_seconds)

    def post_message(self, token: str, channel: str, text: str) -> bool:
        """Post `text` to `channel`; True only when Slack answers with `ok: true`."""
        if not text.strip():
            LOGGER.warning("refusing to post an empty Slack message channel=%s", channel)
            return False

        try:
            status_code, payload = _post_json(
                self._post_message_url,
                token=token,
                payload={"channel": channel, "text": text},
                timeout_seconds=self._http_timeout_seconds,
            )
        except RemoteCallError as exc:
            LOGGER.error("Error posting message to Slack: %s", exc)
            return False

        if payload.get("ok") is True:
            LOGGER.info("Message posted to Slack successfully. channel=%s", channel)
            return True

        error = payload.get("error")
        LOGGER.error(
            "Failed to post message to Slack: %s (status=%d)",
            error if isinstance(error, str) else "unknown_error",
            status_code,
        )
        return False


def _post_json(
    url: str,
    *,
    token: str,
    payload: dict[str, Any],
    timeout_seconds: float,
) -> tuple[int, dict[str, Any]]:
    body = json.dumps(payload, ensure_ascii=True).encode("utf-8")
    try:
        request = Request(
            url,
            data=body,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json; charset=utf-8",
                "Accept": "application/json",
            },
            method="POST",
        )
    except ValueError as exc:
        raise RemoteCallError(f"Invalid Slack API URL: {exc}", service="slack") from exc

    try:
        with urlopen(request, timeout=timeout_seconds) as response:
            status_code = int(response.getcode() or 0)
            raw_body = response.read().decode("utf-8", errors="replace")
    except HTTPError as exc:
        status_code = int(exc.code)
        try:
            raw_body = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
        except (HTTPException, OSError):
            raw_body = ""
    except (URLError, HTTPException, TimeoutError, OSError) as exc:
        raise RemoteCallError(f"Slack request failed: {exc}", service="slack") from exc

    return status_code, _parse_json_dict(raw_body)


def _parse_json_dict(raw_body: str) -> dict[str, Any]:
    if not raw_body.strip():
        return {}
    try:
        parsed = json.loads(raw_body)
    except json.JSONDecodeError:
        return {}
    return as_dict(parsed)
