from __future__ import annotations


class VideoDigestError(Exception):
    pass


class ConfigError(VideoDigestError):
    """Missing or malformed local files or required settings. Fatal for the run."""


class AuthExchangeError(VideoDigestError):
    """The authorization code could not be exchanged for a token."""


class NeedsAuthError(VideoDigestError):
    """The stored authorization was missing or rejected by the provider."""


class RemoteCallError(VideoDigestError):
    def __init__(
        self,
        message: str,
        *,
        service: str,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code
