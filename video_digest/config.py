from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from video_digest.errors import ConfigError

DEFAULT_SEARCH_TERM = "Nord Security"
DEFAULT_MESSAGE_INTRO = "The top 5 NordSecurity YouTube videos:"
_PATH_FIELDS: tuple[str, ...] = ("credentials_path", "token_path", "log_dir")
_REQUIRED_FIELDS: tuple[tuple[str, str], ...] = (
    ("youtube_api_key", "YOUTUBE_API_KEY"),
    ("google_spreadsheet_id", "GOOGLE_SPREADSHEET_ID"),
    ("slack_oauth_token", "SLACK_OAUTH_TOKEN"),
    ("slack_channel_id", "SLACK_CHANNEL_ID"),
)


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class DigestSettings(BaseSettings):
    """
    Runtime configuration for one digest run.

    Provider credentials keep their historical unprefixed env names
    (`YOUTUBE_API_KEY`, `GOOGLE_SPREADSHEET_ID`, `SLACK_OAUTH_TOKEN`,
    `SLACK_CHANNEL_ID`); everything else reads `VIDEO_DIGEST_*`.
    """

    model_config = SettingsConfigDict(
        env_prefix="VIDEO_DIGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # Provider credentials.
    youtube_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("YOUTUBE_API_KEY", "youtube_api_key"),
        description="YouTube Data API key used for search and statistics calls.",
    )
    google_spreadsheet_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_SPREADSHEET_ID", "google_spreadsheet_id"),
        description="Target Google Sheets spreadsheet id.",
    )
    slack_oauth_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SLACK_OAUTH_TOKEN", "slack_oauth_token"),
        description="Slack bot token sent as `Authorization: Bearer <token>`.",
    )
    slack_channel_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SLACK_CHANNEL_ID", "slack_channel_id"),
        description="Slack channel that receives the digest message.",
    )

    # Digest content.
    search_term: str = Field(
        default=DEFAULT_SEARCH_TERM,
        description="Fixed YouTube search query.",
    )
    max_results: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Number of search results ranked per run (first page only).",
    )
    sheet_range: str = Field(
        default="Sheet1",
        description="Append range (sheet name or A1 range) inside the spreadsheet.",
    )
    message_intro: str = Field(
        default=DEFAULT_MESSAGE_INTRO,
        description="First line of the Slack message.",
    )

    # OAuth files.
    credentials_path: Path = Field(
        default=Path("credentials.json"),
        description="Installed-app OAuth client JSON (`installed.client_id`, ...).",
    )
    token_path: Path = Field(
        default=Path("token.json"),
        description="Persisted Google Sheets OAuth token JSON, overwritten on re-auth.",
    )

    # Slack transport.
    slack_api_base_url: str = Field(
        default="https://slack.com/api",
        description="Slack Web API base URL.",
    )
    slack_http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for the Slack post.",
    )

    # Logging.
    log_dir: Path = Field(
        default=Path("logs"),
        description="Directory for the JSON log file and telemetry log.",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level.",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight run telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description="Telemetry sink. `log` writes structured events, `none` disables output.",
    )

    @field_validator(
        "youtube_api_key",
        "google_spreadsheet_id",
        "slack_oauth_token",
        "slack_channel_id",
        mode="before",
    )
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)

    @field_validator("search_term", "sheet_range", mode="before")
    @classmethod
    def _normalize_required_text(cls, value: Any, info: ValidationInfo) -> str:
        normalized = _normalize_optional_text(value)
        if normalized is None:
            raise ValueError(f"VIDEO_DIGEST_{str(info.field_name).upper()} must not be empty.")
        return normalized

    @field_validator("slack_api_base_url", mode="before")
    @classmethod
    def _normalize_slack_base_url(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("VIDEO_DIGEST_SLACK_API_BASE_URL must be a string.")
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("VIDEO_DIGEST_SLACK_API_BASE_URL must not be empty.")
        if not normalized.startswith(("http://", "https://")):
            raise ValueError("VIDEO_DIGEST_SLACK_API_BASE_URL must start with http:// or https://.")
        return normalized

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("VIDEO_DIGEST_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("VIDEO_DIGEST_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("telemetry_enabled", mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any) -> bool:
        return _parse_bool_with_default(value, default=True)

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)


def _validate_required_settings(settings: DigestSettings) -> None:
    errors = [
        f"{env_name} is required."
        for field_name, env_name in _REQUIRED_FIELDS
        if getattr(settings, field_name) is None
    ]
    if errors:
        bullets = "\n".join(f"- {message}" for message in errors)
        raise ConfigError(f"Invalid video digest configuration:\n{bullets}")


def load_settings(*, validate_required: bool = True) -> DigestSettings:
    try:
        settings = DigestSettings()
    except ValidationError as exc:
        raise ConfigError(f"Invalid video digest configuration:\n{exc}") from exc

    if validate_required:
        _validate_required_settings(settings)

    return settings
