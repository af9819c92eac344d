from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace

from video_digest.config import DigestSettings
from video_digest.errors import AuthExchangeError, ConfigError, NeedsAuthError, RemoteCallError
from video_digest.models.digest import (
    AuthorizationContext,
    ClientCredentials,
    PipelineOutcome,
    RankedVideo,
)
from video_digest.services.auth_flow import InteractiveAuthFlow
from video_digest.services.chat_notifier import SlackNotifier
from video_digest.services.credential_store import CredentialStore
from video_digest.services.sheets_writer import SheetsWriter, build_rows
from video_digest.services.video_lookup import VideoLookup
from video_digest.telemetry import TelemetryClient

LOGGER = logging.getLogger("video_digest.pipeline")

AuthFlowFactory = Callable[[ClientCredentials], InteractiveAuthFlow]


class DigestPipeline:
    """
    Lookup -> sheet append -> Slack post, with a single interactive re-auth.

    `run()` never raises for provider failures; it returns a `PipelineOutcome`
    whose `needs_auth` status is the only thing that triggers the OAuth
    prompt. `execute()` drives one full run including that fallback and
    resumes from the step that needed authorization.
    """

    def __init__(
        self,
        *,
        settings: DigestSettings,
        store: CredentialStore,
        lookup: VideoLookup,
        writer: SheetsWriter,
        notifier: SlackNotifier,
        telemetry: TelemetryClient | None = None,
        auth_flow_factory: AuthFlowFactory | None = None,
    ) -> None:
        self._settings = settings
        self._spreadsheet_id = _require(settings.google_spreadsheet_id, "GOOGLE_SPREADSHEET_ID")
        self._slack_token = _require(settings.slack_oauth_token, "SLACK_OAUTH_TOKEN")
        self._slack_channel = _require(settings.slack_channel_id, "SLACK_CHANNEL_ID")
        self._store = store
        self._lookup = lookup
        self._writer = writer
        self._notifier = notifier
        self._telemetry = telemetry or TelemetryClient.disabled()
        self._auth_flow_factory = auth_flow_factory or self._default_auth_flow

    def _default_auth_flow(self, client: ClientCredentials) -> InteractiveAuthFlow:
        return InteractiveAuthFlow(client=client, store=self._store)

    def compose_message(self, videos: Sequence[RankedVideo]) -> str:
        lines = [video.message_line(index) for index, video in enumerate(videos, start=1)]
        return "\n".join([self._settings.message_intro, *lines])

    def run(
        self,
        context: AuthorizationContext | None,
        *,
        ranked_videos: Sequence[RankedVideo] | None = None,
    ) -> PipelineOutcome:
        if context is None:
            return PipelineOutcome(
                status="needs_auth",
                error="No usable stored Google authorization.",
            )

        if ranked_videos is None:
            try:
                with self._telemetry.stage("lookup"):
                    videos = tuple(
                        self._lookup.lookup(self._settings.search_term, self._settings.max_results)
                    )
            except RemoteCallError as exc:
                LOGGER.error("video lookup failed service=%s error=%s", exc.service, exc)
                return PipelineOutcome(status="failed", error=str(exc))
        else:
            videos = tuple(ranked_videos)

        try:
            with self._telemetry.stage("sheets", rows=len(videos) + 1):
                append_result = self._writer.append_rows(
                    context,
                    spreadsheet_id=self._spreadsheet_id,
                    range_name=self._settings.sheet_range,
                    rows=build_rows(videos),
                )
        except NeedsAuthError as exc:
            return PipelineOutcome(status="needs_auth", ranked_videos=videos, error=str(exc))

        message = self.compose_message(videos)
        with self._telemetry.stage("slack"):
            chat_posted = self._notifier.post_message(
                self._slack_token,
                self._slack_channel,
                message,
            )

        return PipelineOutcome(
            status="completed",
            ranked_videos=videos,
            message=message,
            append_result=append_result,
            chat_posted=chat_posted,
        )

    def execute(self) -> PipelineOutcome:
        self._telemetry.emit(
            "digest.run.start",
            search_term=self._settings.search_term,
            max_results=self._settings.max_results,
        )
        client = self._store.load_client_credentials()

        try:
            context = self._store.load_authorization(client)
        except RemoteCallError as exc:
            LOGGER.error("loading stored authorization failed error=%s", exc)
            outcome = PipelineOutcome(status="failed", error=str(exc))
        else:
            outcome = self.run(context)

        if outcome.needs_auth:
            outcome = self._reauthorize_and_resume(client, outcome)

        self._telemetry.emit(
            "digest.run.finish",
            status=outcome.status,
            video_count=len(outcome.ranked_videos or ()),
            sheet_updated=outcome.append_result is not None and outcome.append_result.succeeded,
            chat_posted=outcome.chat_posted,
        )
        return outcome

    def _reauthorize_and_resume(
        self,
        client: ClientCredentials,
        pending: PipelineOutcome,
    ) -> PipelineOutcome:
        LOGGER.warning("Google authorization required: %s", pending.error)
        self._telemetry.emit(
            "digest.auth.required",
            lookup_completed=pending.ranked_videos is not None,
        )
        try:
            context = self._auth_flow_factory(client).authorize()
        except AuthExchangeError as exc:
            LOGGER.error("Error retrieving access token: %s", exc)
            return replace(pending, status="failed", error=str(exc))

        outcome = self.run(context, ranked_videos=pending.ranked_videos)
        if outcome.needs_auth:
            LOGGER.error("Google Sheets rejected the freshly granted token: %s", outcome.error)
            return replace(outcome, status="failed")
        return outcome


def build_digest_pipeline(
    settings: DigestSettings,
    *,
    telemetry: TelemetryClient | None = None,
) -> DigestPipeline:
    return DigestPipeline(
        settings=settings,
        store=CredentialStore(
            credentials_path=settings.credentials_path,
            token_path=settings.token_path,
        ),
        lookup=VideoLookup(api_key=_require(settings.youtube_api_key, "YOUTUBE_API_KEY")),
        writer=SheetsWriter(),
        notifier=SlackNotifier(
            base_url=settings.slack_api_base_url,
            http_timeout_seconds=settings.slack_http_timeout_seconds,
        ),
        telemetry=telemetry,
    )


def _require(value: str | None, env_name: str) -> str:
    if value is None:
        raise ConfigError(f"{env_name} is required.")
    return value
