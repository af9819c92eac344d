from __future__ import annotations

import argparse
import logging
import sys

from video_digest.config import load_settings
from video_digest.errors import ConfigError
from video_digest.logging_config import configure_application_logging
from video_digest.services.digest_pipeline import build_digest_pipeline
from video_digest.telemetry import build_telemetry_client

LOGGER = logging.getLogger("video_digest.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Rank the top YouTube search results by views, append them to Google Sheets "
            "and post the ranking to Slack. Configuration comes from the environment "
            "(or a .env file); Google authorization is requested interactively when needed."
        ),
    )
    return parser.parse_args(argv)


def run(argv: list[str] | None = None) -> int:
    _parse_args(argv)
    try:
        settings = load_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_application_logging(settings)
    telemetry = build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )

    try:
        outcome = build_digest_pipeline(settings, telemetry=telemetry).execute()
    except ConfigError as exc:
        LOGGER.error("Configuration error: %s", exc)
        return EXIT_CONFIG_ERROR

    if outcome.status != "completed":
        LOGGER.error(
            "digest run did not complete status=%s error=%s",
            outcome.status,
            outcome.error,
        )
        return EXIT_FAILED
    return EXIT_OK


def main() -> None:
    raise SystemExit(run())


if __name__ == "__main__":
    main()
