"""Command-line interface for recurring web retrieval."""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from typing import Any, List, TextIO

from apscheduler.schedulers.blocking import BlockingScheduler

from web_retrieval.config import Settings, load_settings
from web_retrieval.decoders import Decoder, body_as_text_with_header_charset, html_selector, json_document
from web_retrieval.fetcher import RecurringFetcher
from web_retrieval.logging_config import configure_logging
from web_retrieval.models import RetrievedData
from web_retrieval.notifier import SlackNotifier, StdoutNotifier
from web_retrieval.scheduler import FetchScheduler


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Periodically retrieve content from a pool of URLs.")
    parser.add_argument("--settings", default="config/settings.example.yml", help="Path to settings YAML.")
    parser.add_argument("--decoder", choices=["text", "json", "html"], default="text", help="How to decode bodies.")
    parser.add_argument("--selector", help="CSS selector for the html decoder.")
    parser.add_argument("--once", action="store_true", help="Fetch once and exit.")
    return parser


def _select_decoder(args: argparse.Namespace) -> Decoder[Any]:
    if args.decoder == "json":
        return json_document()
    if args.decoder == "html":
        if not args.selector:
            raise ValueError("--selector is required for the html decoder")
        return html_selector(args.selector)
    return body_as_text_with_header_charset("utf-8")


def _select_notifier(settings: Settings) -> Any:
    if settings.alerts.slack_webhook_url:
        return SlackNotifier(settings.alerts.slack_webhook_url)
    return StdoutNotifier()


def _build_fetcher(settings: Settings, decoder: Decoder[Any]) -> RecurringFetcher[Any]:
    fetcher: RecurringFetcher[Any] = RecurringFetcher(decoder, failure_threshold=settings.fetcher.failure_threshold)
    fetcher.set_template(settings.retrieval.to_config())
    fetcher.set_urls(settings.fetcher.urls)
    if settings.fetcher.preferred_interval_seconds:
        fetcher.set_preferred_interval(timedelta(seconds=settings.fetcher.preferred_interval_seconds))
    fetcher.on_failure.subscribe(_select_notifier(settings))
    return fetcher


def _printer(stream: TextIO) -> Any:
    def print_result(result: RetrievedData[Any]) -> None:
        print(f"{result.retrieved_time.isoformat()} {result.retrieved_location} {result.data!r}", file=stream)

    return print_result


def main(argv: List[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    try:
        settings = load_settings(args.settings)
        configure_logging(settings.logging.level, json_format=settings.logging.json)

        fetcher = _build_fetcher(settings, _select_decoder(args))
        fetcher.on_success.subscribe(_printer(sys.stdout))

        if args.once:
            if not fetcher.fetch():
                raise RuntimeError(f"Fetch failed: {fetcher.last_error}")
            return

        scheduler = BlockingScheduler()
        FetchScheduler(fetcher, scheduler).schedule(run_now=True)
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            scheduler.shutdown(wait=False)
    except Exception as exc:  # noqa: BLE001
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
