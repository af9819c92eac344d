from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from video_digest.errors import NeedsAuthError
from video_digest.models.digest import AppendResult, AuthorizationContext, RankedVideo
from video_digest.services.common import as_dict
from video_digest.services.google_api import (
    build_google_service,
    http_status_of,
    summarize_exception_message,
)

LOGGER = logging.getLogger("video_digest.sheets")

HEADER_ROW: tuple[str, str] = ("Video Name", "Views")
VALUE_INPUT_OPTION = "USER_ENTERED"

_SCOPE_REJECTION_MARKERS: tuple[str, ...] = (
    "access_token_scope_insufficient",
    "insufficient authentication scopes",
    "insufficientpermissions",
)


def build_rows(videos: Sequence[RankedVideo]) -> list[list[str]]:
    return [list(HEADER_ROW), *(video.sheet_row() for video in videos)]


class SheetsWriter:
    """
    Appends digest rows to a spreadsheet range.

    Every call appends a fresh header plus data rows; nothing is deduplicated
    across runs. Auth rejections raise `NeedsAuthError`, any other failure is
    logged and reported as an empty `AppendResult`.
    """

    def __init__(self, *, client_factory: Callable[[Any], Any] | None = None) -> None:
        self._client_factory = client_factory or _build_sheets_client

    def append_rows(
        self,
        context: AuthorizationContext,
        *,
        spreadsheet_id: str,
        range_name: str,
        rows: Sequence[Sequence[str]],
    ) -> AppendResult:
        try:
            client = self._client_factory(context.credentials)
            response = as_dict(
                client.spreadsheets()
                .values()
                .append(
                    spreadsheetId=spreadsheet_id,
                    range=range_name,
                    valueInputOption=VALUE_INPUT_OPTION,
                    body={"values": [list(row) for row in rows]},
                )
                .execute()
            )
        except Exception as exc:
            if _is_auth_rejection(exc):
                LOGGER.warning(
                    "sheets append rejected authorization spreadsheet_id=%s range=%s",
                    spreadsheet_id,
                    range_name,
                )
                raise NeedsAuthError(
                    f"Google Sheets rejected the stored authorization: "
                    f"{summarize_exception_message(exc)}"
                ) from exc
            LOGGER.error(
                "Error updating sheet spreadsheet_id=%s range=%s error=%s",
                spreadsheet_id,
                range_name,
                summarize_exception_message(exc),
                exc_info=True,
            )
            return AppendResult.empty()

        updates = as_dict(response.get("updates"))
        updated_range = updates.get("updatedRange")
        updated_rows = updates.get("updatedRows")
        result = AppendResult(
            updated_range=updated_range if isinstance(updated_range, str) else range_name,
            updated_rows=updated_rows if isinstance(updated_rows, int) else len(rows),
        )
        LOGGER.info(
            "Sheet successfully updated. range=%s rows=%d",
            result.updated_range,
            result.updated_rows,
        )
        return result


def _build_sheets_client(credentials: Any) -> Any:
    return build_google_service("sheets", "v4", credentials=credentials)


def _is_auth_rejection(exc: Exception) -> bool:
    if exc.__class__.__name__ == "RefreshError":
        return True
    status_code = http_status_of(exc)
    if status_code == 401:
        return True
    if status_code == 403:
        message = str(exc).lower()
        return any(marker in message for marker in _SCOPE_REJECTION_MARKERS)
    return False
