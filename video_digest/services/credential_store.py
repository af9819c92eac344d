from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from video_digest.errors import ConfigError, RemoteCallError
from video_digest.models.digest import (
    GOOGLE_AUTH_URI,
    GOOGLE_TOKEN_URI,
    AuthorizationContext,
    ClientCredentials,
)
from video_digest.services.common import as_dict
from video_digest.services.google_api import (
    SHEETS_SCOPES,
    load_google_module,
    summarize_exception_message,
)

LOGGER = logging.getLogger("video_digest.credentials")


class CredentialStore:
    """Client identity and persisted Sheets token, both as local JSON files."""

    def __init__(
        self,
        *,
        credentials_path: Path,
        token_path: Path,
        scopes: tuple[str, ...] = SHEETS_SCOPES,
    ) -> None:
        self._credentials_path = credentials_path
        self._token_path = token_path
        self._scopes = scopes

    @property
    def token_path(self) -> Path:
        return self._token_path

    @property
    def scopes(self) -> tuple[str, ...]:
        return self._scopes

    def load_client_credentials(self) -> ClientCredentials:
        if not self._credentials_path.is_file():
            raise ConfigError(f"Missing OAuth client credentials file: {self._credentials_path}")
        try:
            payload = json.loads(self._credentials_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ConfigError(
                f"Unreadable OAuth client credentials file {self._credentials_path}: {exc}"
            ) from exc

        installed = as_dict(as_dict(payload).get("installed"))
        if not installed:
            raise ConfigError(
                f"OAuth client credentials file {self._credentials_path} has no `installed` object"
            )

        client_id = _coerce_nonempty_string(installed.get("client_id"))
        client_secret = _coerce_nonempty_string(installed.get("client_secret"))
        redirect_uris = installed.get("redirect_uris")
        redirect_uri = (
            _coerce_nonempty_string(redirect_uris[0])
            if isinstance(redirect_uris, list) and redirect_uris
            else None
        )
        missing = [
            name
            for name, value in (
                ("client_id", client_id),
                ("client_secret", client_secret),
                ("redirect_uris[0]", redirect_uri),
            )
            if value is None
        ]
        if client_id is None or client_secret is None or redirect_uri is None:
            raise ConfigError(
                f"OAuth client credentials file {self._credentials_path} is missing: "
                + ", ".join(missing)
            )

        return ClientCredentials(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            auth_uri=_coerce_nonempty_string(installed.get("auth_uri")) or GOOGLE_AUTH_URI,
            token_uri=_coerce_nonempty_string(installed.get("token_uri")) or GOOGLE_TOKEN_URI,
        )

    def load_token(self, client: ClientCredentials) -> Any | None:
        """
        Parse the stored token into google-auth `Credentials`.

        Returns None when the file is absent, unparsable, or was granted for a
        scope that does not cover spreadsheet access; the caller treats that as
        "needs authorization" rather than an error.
        """
        if not self._token_path.is_file():
            LOGGER.warning("oauth token missing path=%s", self._token_path)
            return None
        try:
            payload = as_dict(json.loads(self._token_path.read_text(encoding="utf-8")))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            LOGGER.warning("oauth token unreadable path=%s", self._token_path, exc_info=True)
            return None

        info = _normalize_token_payload(payload, client)
        granted_scopes = info.get("scopes")
        if isinstance(granted_scopes, list) and not set(self._scopes) <= set(granted_scopes):
            LOGGER.warning(
                "oauth token scope mismatch path=%s granted=%s",
                self._token_path,
                " ".join(str(scope) for scope in granted_scopes),
            )
            return None

        credentials_module = load_google_module("google.oauth2.credentials")
        credentials_cls: Any = credentials_module.Credentials
        try:
            return credentials_cls.from_authorized_user_info(info, list(self._scopes))
        except ValueError:
            LOGGER.warning("oauth token malformed path=%s", self._token_path, exc_info=True)
            return None

    def save_token(self, credentials: Any) -> Path:
        """Replace the token file in one step so a crash never leaves half a token."""
        serialized = str(credentials.to_json())
        self._token_path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=self._token_path.parent,
            prefix=f".{self._token_path.name}.",
            delete=False,
        ) as temp_file:
            temp_file.write(serialized)
            temp_path = Path(temp_file.name)
        try:
            os.replace(temp_path, self._token_path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise
        LOGGER.info("oauth token saved path=%s", self._token_path)
        return self._token_path

    def load_authorization(self, client: ClientCredentials) -> AuthorizationContext | None:
        credentials = self.load_token(client)
        if credentials is None:
            return None
        if credentials.valid:
            return AuthorizationContext(credentials=credentials, source="stored")
        if not credentials.refresh_token:
            LOGGER.warning("oauth token expired without refresh token path=%s", self._token_path)
            return None

        requests_module = load_google_module("google.auth.transport.requests")
        request_cls: Any = requests_module.Request
        try:
            credentials.refresh(request_cls())
        except Exception as exc:
            LOGGER.warning(
                "oauth token_refresh_failed token_path=%s",
                self._token_path,
                exc_info=True,
            )
            if _oauth_refresh_requires_reauth(exc):
                return None
            raise RemoteCallError(
                f"Failed to refresh Google OAuth token: {summarize_exception_message(exc)}",
                service="google.oauth",
            ) from exc

        self.save_token(credentials)
        return AuthorizationContext(credentials=credentials, source="refreshed")


def _normalize_token_payload(payload: dict[str, Any], client: ClientCredentials) -> dict[str, Any]:
    # Accept both google-auth `to_json()` output and the bare OAuth token response
    # (`access_token`, `scope`, `expiry_date`) written by other Google client libraries.
    info = dict(payload)
    if "token" not in info and isinstance(info.get("access_token"), str):
        info["token"] = info["access_token"]
    if "scopes" not in info and isinstance(info.get("scope"), str):
        info["scopes"] = info["scope"].split()
    info.setdefault("client_id", client.client_id)
    info.setdefault("client_secret", client.client_secret)
    info.setdefault("token_uri", client.token_uri)
    return info


def _oauth_refresh_requires_reauth(exc: Exception) -> bool:
    normalized = str(exc).lower()
    return "invalid_grant" in normalized or "expired or revoked" in normalized


def _coerce_nonempty_string(raw_value: object) -> str | None:
    if isinstance(raw_value, str) and raw_value.strip():
        return raw_value.strip()
    return None
