from __future__ import annotations

import json
from pathlib import Path

import pytest

from video_digest.config import DigestSettings, load_settings

_DIGEST_ENV_VARS: tuple[str, ...] = (
    "YOUTUBE_API_KEY",
    "GOOGLE_SPREADSHEET_ID",
    "SLACK_OAUTH_TOKEN",
    "SLACK_CHANNEL_ID",
    "VIDEO_DIGEST_SEARCH_TERM",
    "VIDEO_DIGEST_MAX_RESULTS",
    "VIDEO_DIGEST_SHEET_RANGE",
    "VIDEO_DIGEST_MESSAGE_INTRO",
    "VIDEO_DIGEST_CREDENTIALS_PATH",
    "VIDEO_DIGEST_TOKEN_PATH",
    "VIDEO_DIGEST_SLACK_API_BASE_URL",
    "VIDEO_DIGEST_SLACK_HTTP_TIMEOUT_SECONDS",
    "VIDEO_DIGEST_LOG_DIR",
    "VIDEO_DIGEST_LOG_LEVEL",
    "VIDEO_DIGEST_TELEMETRY_ENABLED",
    "VIDEO_DIGEST_TELEMETRY_SINK",
)


@pytest.fixture(autouse=True)
def _isolated_environment(  # pyright: ignore[reportUnusedFunction]
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    for name in _DIGEST_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keeps a developer's .env and default relative paths out of the tests.
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def client_credentials_path(tmp_path: Path) -> Path:
    path = tmp_path / "credentials.json"
    path.write_text(
        json.dumps(
            {
                "installed": {
                    "client_id": "client-123.apps.googleusercontent.com",
                    "client_secret": "shh-secret",
                    "redirect_uris": ["urn:ietf:wg:oauth:2.0:oob", "http://localhost"],
                }
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def settings(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    client_credentials_path: Path,
) -> DigestSettings:
    monkeypatch.setenv("YOUTUBE_API_KEY", "test-youtube-key")
    monkeypatch.setenv("GOOGLE_SPREADSHEET_ID", "sheet-abc")
    monkeypatch.setenv("SLACK_OAUTH_TOKEN", "xoxb-test")
    monkeypatch.setenv("SLACK_CHANNEL_ID", "C0123")
    monkeypatch.setenv("VIDEO_DIGEST_CREDENTIALS_PATH", str(client_credentials_path))
    monkeypatch.setenv("VIDEO_DIGEST_TOKEN_PATH", str(tmp_path / "token.json"))
    monkeypatch.setenv("VIDEO_DIGEST_LOG_DIR", str(tmp_path / "logs"))
    return load_settings()
