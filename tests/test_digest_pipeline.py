from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, cast

import pytest

from video_digest.config import DEFAULT_MESSAGE_INTRO, DigestSettings
from video_digest.errors import AuthExchangeError, ConfigError, NeedsAuthError, RemoteCallError
from video_digest.models.digest import (
    AppendResult,
    AuthorizationContext,
    ClientCredentials,
    RankedVideo,
)
from video_digest.services.auth_flow import InteractiveAuthFlow
from video_digest.services.chat_notifier import SlackNotifier
from video_digest.services.credential_store import CredentialStore
from video_digest.services.digest_pipeline import DigestPipeline, build_digest_pipeline
from video_digest.services.sheets_writer import SheetsWriter
from video_digest.services.video_lookup import VideoLookup, rank
from video_digest.telemetry import TelemetryClient

_CLIENT = ClientCredentials(
    client_id="client-123",
    client_secret="shh-secret",
    redirect_uri="urn:ietf:wg:oauth:2.0:oob",
)
_STORED = AuthorizationContext(credentials="stored-credentials", source="stored")
_GRANTED = AuthorizationContext(credentials="granted-credentials", source="interactive")


def _scenario_videos() -> list[RankedVideo]:
    return rank(
        [
            {"id": "v1", "snippet": {"title": "Alpha"}, "statistics": {"viewCount": "50"}},
            {"id": "v2", "snippet": {"title": "Bravo"}, "statistics": {"viewCount": "200"}},
            {"id": "v3", "snippet": {"title": "Charlie"}, "statistics": {"viewCount": "10"}},
            {"id": "v4", "snippet": {"title": "Delta"}, "statistics": {"viewCount": "75"}},
            {"id": "v5", "snippet": {"title": "Echo"}, "statistics": {"viewCount": "75"}},
        ]
    )


class FakeStore:
    def __init__(
        self,
        *,
        context: AuthorizationContext | None = None,
        client_error: Exception | None = None,
        authorization_error: Exception | None = None,
    ) -> None:
        self._context = context
        self._client_error = client_error
        self._authorization_error = authorization_error

    def load_client_credentials(self) -> ClientCredentials:
        if self._client_error is not None:
            raise self._client_error
        return _CLIENT

    def load_authorization(self, client: ClientCredentials) -> AuthorizationContext | None:
        assert client == _CLIENT
        if self._authorization_error is not None:
            raise self._authorization_error
        return self._context


class FakeLookup:
    def __init__(self, result: list[RankedVideo] | Exception) -> None:
        self._result = result
        self.calls: list[tuple[str, int]] = []

    def lookup(self, term: str, max_results: int) -> list[RankedVideo]:
        self.calls.append((term, max_results))
        if isinstance(self._result, Exception):
            raise self._result
        return list(self._result)


class FakeWriter:
    def __init__(self, results: list[AppendResult | Exception]) -> None:
        self._results = results
        self.calls: list[dict[str, Any]] = []

    def append_rows(
        self,
        context: AuthorizationContext,
        *,
        spreadsheet_id: str,
        range_name: str,
        rows: Sequence[Sequence[str]],
    ) -> AppendResult:
        self.calls.append(
            {
                "context": context,
                "spreadsheet_id": spreadsheet_id,
                "range_name": range_name,
                "rows": [list(row) for row in rows],
            }
        )
        result = self._results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakeNotifier:
    def __init__(self, result: bool = True) -> None:
        self._result = result
        self.calls: list[tuple[str, str, str]] = []

    def post_message(self, token: str, channel: str, text: str) -> bool:
        self.calls.append((token, channel, text))
        return self._result


class FakeAuthFlow:
    def __init__(self, result: AuthorizationContext | Exception) -> None:
        self._result = result
        self.clients: list[ClientCredentials] = []

    def factory(self, client: ClientCredentials) -> InteractiveAuthFlow:
        self.clients.append(client)
        return cast(InteractiveAuthFlow, self)

    def authorize(self) -> AuthorizationContext:
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


class _CaptureSink:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self.events.append((event_name, dict(attributes)))


def _pipeline(
    settings: DigestSettings,
    *,
    store: FakeStore,
    lookup: FakeLookup,
    writer: FakeWriter,
    notifier: FakeNotifier,
    auth_flow: FakeAuthFlow | None = None,
    sink: _CaptureSink | None = None,
) -> DigestPipeline:
    auth = auth_flow or FakeAuthFlow(AssertionError("authorization must not be requested"))
    return DigestPipeline(
        settings=settings,
        store=cast(CredentialStore, store),
        lookup=cast(VideoLookup, lookup),
        writer=cast(SheetsWriter, writer),
        notifier=cast(SlackNotifier, notifier),
        telemetry=TelemetryClient(enabled=True, sink=sink or _CaptureSink()),
        auth_flow_factory=auth.factory,
    )


_EXPECTED_MESSAGE = "\n".join(
    [
        DEFAULT_MESSAGE_INTRO,
        "1. Bravo - 200 views",
        "2. Delta - 75 views",
        "3. Echo - 75 views",
        "4. Alpha - 50 views",
        "5. Charlie - 10 views",
    ]
)
_EXPECTED_ROWS = [
    ["Video Name", "Views"],
    ["Bravo", "200"],
    ["Delta", "75"],
    ["Echo", "75"],
    ["Alpha", "50"],
    ["Charlie", "10"],
]


def test_execute_end_to_end_ranks_writes_and_posts(settings: DigestSettings) -> None:
    lookup = FakeLookup(_scenario_videos())
    writer = FakeWriter([AppendResult(updated_range="Sheet1!A1:B6", updated_rows=6)])
    notifier = FakeNotifier()
    sink = _CaptureSink()

    outcome = _pipeline(
        settings,
        store=FakeStore(context=_STORED),
        lookup=lookup,
        writer=writer,
        notifier=notifier,
        sink=sink,
    ).execute()

    assert outcome.status == "completed"
    assert outcome.chat_posted is True
    assert outcome.message == _EXPECTED_MESSAGE
    assert lookup.calls == [("Nord Security", 5)]
    assert writer.calls == [
        {
            "context": _STORED,
            "spreadsheet_id": "sheet-abc",
            "range_name": "Sheet1",
            "rows": _EXPECTED_ROWS,
        }
    ]
    assert notifier.calls == [("xoxb-test", "C0123", _EXPECTED_MESSAGE)]
    event_names = [name for name, _attributes in sink.events]
    assert event_names[0] == "digest.run.start"
    assert event_names[-1] == "digest.run.finish"
    assert sink.events[-1][1]["status"] == "completed"
    assert sink.events[-1][1]["video_count"] == 5


def test_sheet_failure_still_posts_precomputed_message(settings: DigestSettings) -> None:
    notifier = FakeNotifier()

    outcome = _pipeline(
        settings,
        store=FakeStore(context=_STORED),
        lookup=FakeLookup(_scenario_videos()),
        writer=FakeWriter([AppendResult.empty()]),
        notifier=notifier,
    ).execute()

    assert outcome.status == "completed"
    assert outcome.append_result == AppendResult.empty()
    assert notifier.calls == [("xoxb-test", "C0123", _EXPECTED_MESSAGE)]


def test_missing_token_runs_auth_flow_then_full_pipeline(settings: DigestSettings) -> None:
    lookup = FakeLookup(_scenario_videos())
    writer = FakeWriter([AppendResult(updated_range="Sheet1!A1:B6", updated_rows=6)])
    notifier = FakeNotifier()
    auth_flow = FakeAuthFlow(_GRANTED)

    outcome = _pipeline(
        settings,
        store=FakeStore(context=None),
        lookup=lookup,
        writer=writer,
        notifier=notifier,
        auth_flow=auth_flow,
    ).execute()

    assert outcome.status == "completed"
    assert auth_flow.clients == [_CLIENT]
    assert writer.calls[0]["context"] == _GRANTED
    assert notifier.calls == [("xoxb-test", "C0123", _EXPECTED_MESSAGE)]


def test_rejected_token_reauthorizes_and_resumes_without_new_lookup(
    settings: DigestSettings,
) -> None:
    lookup = FakeLookup(_scenario_videos())
    writer = FakeWriter(
        [
            NeedsAuthError("Google Sheets rejected the stored authorization"),
            AppendResult(updated_range="Sheet1!A7:B12", updated_rows=6),
        ]
    )
    notifier = FakeNotifier()
    auth_flow = FakeAuthFlow(_GRANTED)
    sink = _CaptureSink()

    outcome = _pipeline(
        settings,
        store=FakeStore(context=_STORED),
        lookup=lookup,
        writer=writer,
        notifier=notifier,
        auth_flow=auth_flow,
        sink=sink,
    ).execute()

    assert outcome.status == "completed"
    assert lookup.calls == [("Nord Security", 5)]
    assert [call["context"] for call in writer.calls] == [_STORED, _GRANTED]
    assert writer.calls[1]["rows"] == _EXPECTED_ROWS
    assert notifier.calls == [("xoxb-test", "C0123", _EXPECTED_MESSAGE)]
    auth_events = [attrs for name, attrs in sink.events if name == "digest.auth.required"]
    assert auth_events == [{"lookup_completed": True}]


def test_lookup_failure_does_not_trigger_reauth(settings: DigestSettings) -> None:
    writer = FakeWriter([])
    notifier = FakeNotifier()

    outcome = _pipeline(
        settings,
        store=FakeStore(context=_STORED),
        lookup=FakeLookup(RemoteCallError("YouTube request failed", service="youtube.search")),
        writer=writer,
        notifier=notifier,
    ).execute()

    assert outcome.status == "failed"
    assert outcome.ranked_videos is None
    assert writer.calls == []
    assert notifier.calls == []


def test_auth_exchange_failure_stops_the_run(settings: DigestSettings) -> None:
    lookup = FakeLookup(_scenario_videos())
    notifier = FakeNotifier()

    outcome = _pipeline(
        settings,
        store=FakeStore(context=None),
        lookup=lookup,
        writer=FakeWriter([]),
        notifier=notifier,
        auth_flow=FakeAuthFlow(AuthExchangeError("Error retrieving access token: invalid_grant")),
    ).execute()

    assert outcome.status == "failed"
    assert outcome.error is not None and "invalid_grant" in outcome.error
    assert lookup.calls == []
    assert notifier.calls == []


def test_second_rejection_after_reauth_fails_instead_of_looping(settings: DigestSettings) -> None:
    writer = FakeWriter(
        [
            NeedsAuthError("rejected"),
            NeedsAuthError("rejected again"),
        ]
    )
    notifier = FakeNotifier()

    outcome = _pipeline(
        settings,
        store=FakeStore(context=_STORED),
        lookup=FakeLookup(_scenario_videos()),
        writer=writer,
        notifier=notifier,
        auth_flow=FakeAuthFlow(_GRANTED),
    ).execute()

    assert outcome.status == "failed"
    assert len(writer.calls) == 2
    assert notifier.calls == []


def test_transient_token_refresh_failure_fails_without_prompt(settings: DigestSettings) -> None:
    outcome = _pipeline(
        settings,
        store=FakeStore(authorization_error=RemoteCallError("timeout", service="google.oauth")),
        lookup=FakeLookup(_scenario_videos()),
        writer=FakeWriter([]),
        notifier=FakeNotifier(),
    ).execute()

    assert outcome.status == "failed"


def test_malformed_client_credentials_abort_before_network(settings: DigestSettings) -> None:
    lookup = FakeLookup(_scenario_videos())

    with pytest.raises(ConfigError):
        _pipeline(
            settings,
            store=FakeStore(client_error=ConfigError("no `installed` object")),
            lookup=lookup,
            writer=FakeWriter([]),
            notifier=FakeNotifier(),
        ).execute()

    assert lookup.calls == []


def test_compose_message_with_no_videos_keeps_intro(settings: DigestSettings) -> None:
    pipeline = _pipeline(
        settings,
        store=FakeStore(),
        lookup=FakeLookup([]),
        writer=FakeWriter([]),
        notifier=FakeNotifier(),
    )

    assert pipeline.compose_message([]) == DEFAULT_MESSAGE_INTRO


def test_build_digest_pipeline_wires_settings(settings: DigestSettings) -> None:
    pipeline = build_digest_pipeline(settings)
    assert isinstance(pipeline, DigestPipeline)


def test_pipeline_requires_provider_settings() -> None:
    with pytest.raises(ConfigError, match="GOOGLE_SPREADSHEET_ID"):
        build_digest_pipeline(DigestSettings(youtube_api_key="key"))


def test_unparsable_token_file_runs_auth_flow_and_posts(settings: DigestSettings) -> None:
    settings.token_path.write_text("{not json", encoding="utf-8")
    writer = FakeWriter([AppendResult(updated_range="Sheet1!A1:B6", updated_rows=6)])
    notifier = FakeNotifier()
    auth_flow = FakeAuthFlow(_GRANTED)

    pipeline = DigestPipeline(
        settings=settings,
        store=CredentialStore(
            credentials_path=settings.credentials_path,
            token_path=settings.token_path,
        ),
        lookup=cast(VideoLookup, FakeLookup(_scenario_videos())),
        writer=cast(SheetsWriter, writer),
        notifier=cast(SlackNotifier, notifier),
        auth_flow_factory=auth_flow.factory,
    )
    outcome = pipeline.execute()

    assert outcome.status == "completed"
    assert [client.client_id for client in auth_flow.clients] == [
        "client-123.apps.googleusercontent.com"
    ]
    assert writer.calls[0]["context"] == _GRANTED
    assert notifier.calls == [("xoxb-test", "C0123", _EXPECTED_MESSAGE)]
