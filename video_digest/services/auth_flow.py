from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from video_digest.errors import AuthExchangeError
from video_digest.models.digest import AuthorizationContext, ClientCredentials
from video_digest.services.credential_store import CredentialStore
from video_digest.services.google_api import load_google_module, summarize_exception_message

LOGGER = logging.getLogger("video_digest.auth")

CODE_PROMPT = "Enter the code from address page here: "


class InteractiveAuthFlow:
    """
    Installed-app OAuth consent driven from the terminal.

    The operator opens the printed URL, approves spreadsheet access and pastes
    the returned code. The run blocks on that input with no timeout. A bad
    code raises `AuthExchangeError`; there is no re-prompt.
    """

    def __init__(
        self,
        *,
        client: ClientCredentials,
        store: CredentialStore,
        input_fn: Callable[[str], str] = input,
        output_fn: Callable[[str], None] = print,
    ) -> None:
        self._client = client
        self._store = store
        self._input_fn = input_fn
        self._output_fn = output_fn
        self._flow: Any | None = None

    def _get_flow(self) -> Any:
        if self._flow is None:
            flow_module = load_google_module("google_auth_oauthlib.flow")
            flow_cls: Any = flow_module.Flow
            self._flow = flow_cls.from_client_config(
                self._client.to_client_config(),
                scopes=list(self._store.scopes),
                redirect_uri=self._client.redirect_uri,
            )
        return self._flow

    def authorization_url(self) -> str:
        url, _state = self._get_flow().authorization_url(
            access_type="offline",
            prompt="consent",
        )
        return str(url)

    def authorize(self) -> AuthorizationContext:
        url = self.authorization_url()
        self._output_fn(f"Authorize this app by visiting this URL: {url}")

        code = self._input_fn(CODE_PROMPT).strip()
        if not code:
            raise AuthExchangeError("No authorization code was entered.")

        flow = self._get_flow()
        try:
            flow.fetch_token(code=code)
        except Exception as exc:
            raise AuthExchangeError(
                f"Error retrieving access token: {summarize_exception_message(exc)}"
            ) from exc

        credentials = flow.credentials
        if credentials is None:
            raise AuthExchangeError("Token exchange did not return credentials.")

        self._store.save_token(credentials)
        LOGGER.info("oauth authorization completed token_path=%s", self._store.token_path)
        return AuthorizationContext(credentials=credentials, source="interactive")
