from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

AuthSource = Literal["stored", "refreshed", "interactive"]
OutcomeStatus = Literal["completed", "needs_auth", "failed"]


@dataclass(frozen=True)
class ClientCredentials:
    client_id: str
    client_secret: str
    redirect_uri: str
    auth_uri: str = GOOGLE_AUTH_URI
    token_uri: str = GOOGLE_TOKEN_URI

    def to_client_config(self) -> dict[str, Any]:
        return {
            "installed": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uris": [self.redirect_uri],
                "auth_uri": self.auth_uri,
                "token_uri": self.token_uri,
            }
        }


@dataclass(frozen=True)
class AuthorizationContext:
    # google.oauth2.credentials.Credentials
    credentials: Any
    source: AuthSource


@dataclass(frozen=True)
class VideoCandidate:
    video_id: str
    title: str


@dataclass(frozen=True)
class RankedVideo:
    video_id: str
    title: str
    view_count: int

    def sheet_row(self) -> list[str]:
        return [self.title, str(self.view_count)]

    def message_line(self, rank: int) -> str:
        return f"{rank}. {self.title} - {self.view_count} views"


@dataclass(frozen=True)
class AppendResult:
    updated_range: str | None
    updated_rows: int

    @classmethod
    def empty(cls) -> AppendResult:
        return cls(updated_range=None, updated_rows=0)

    @property
    def succeeded(self) -> bool:
        return self.updated_range is not None


@dataclass(frozen=True)
class PipelineOutcome:
    status: OutcomeStatus
    # None when the run stopped before the lookup finished.
    ranked_videos: tuple[RankedVideo, ...] | None = None
    message: str | None = None
    append_result: AppendResult | None = None
    chat_posted: bool = False
    error: str | None = None

    @property
    def needs_auth(self) -> bool:
        return self.status == "needs_auth"
