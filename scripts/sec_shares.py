import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Optional
from urllib.parse import parse_qsl, urlparse

import requests

from sec_shares_config import DEFAULT_CIK, TRANSPORTS, SharesConfig, load_config
from sec_shares_display import (
    SLOT_ERROR,
    DisplaySlots,
    bind_error,
    bind_result,
    render_text,
    write_summary,
)
from sec_shares_errors import ExtractionError
from sec_shares_extract import ExtractionResult, extract_shares_data
from sec_shares_fetch import fetch_concept_json, normalize_cik
from sec_shares_retry import RateLimiter, RetryPolicy

logger = logging.getLogger(__name__)

CIK_PARAM = "cik"


def resolve_cik_from_query(query: Optional[str], default: str = DEFAULT_CIK) -> str:
    """Return the ``CIK`` query parameter, matched case-insensitively.

    Accepts a bare query string (``CIK=320193``), one with a leading ``?``
    or a full URL. Falls back to ``default`` when absent or blank.
    """
    if not query:
        return default
    text = query.strip()
    if "://" in text:
        text = urlparse(text).query
    for key, value in parse_qsl(text.lstrip("?")):
        if key.strip().lower() == CIK_PARAM and value.strip():
            return value.strip()
    return default


def fetch_and_extract(
    identifier: Any,
    cutoff_year: int,
    config: Optional[SharesConfig] = None,
    session: Optional[requests.Session] = None,
    limiter: Optional[RateLimiter] = None,
    policy: Optional[RetryPolicy] = None,
) -> ExtractionResult:
    config = config or SharesConfig()
    cik10 = normalize_cik(identifier)
    payload = fetch_concept_json(cik10, config, session=session, limiter=limiter, policy=policy)
    return extract_shares_data(payload, cutoff_year, cik=cik10)


def run(
    identifier: Any,
    config: SharesConfig,
    slots: Optional[DisplaySlots] = None,
    session: Optional[requests.Session] = None,
    limiter: Optional[RateLimiter] = None,
    policy: Optional[RetryPolicy] = None,
) -> tuple[DisplaySlots, Optional[ExtractionResult]]:
    slots = slots if slots is not None else DisplaySlots()
    try:
        result = fetch_and_extract(
            identifier,
            config.cutoff_year,
            config=config,
            session=session,
            limiter=limiter,
            policy=policy,
        )
    except ExtractionError as exc:
        logger.error(
            "Error fetching or rendering data for CIK %s: %s", identifier, exc, exc_info=exc
        )
        bind_error(slots, exc.user_message())
        return slots, None
    bind_result(slots, result)
    return slots, result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fetch SEC shares outstanding and report the max/min after a cutoff year."
    )
    parser.add_argument("--cik", "--CIK", dest="cik", help="Company CIK (overrides --query).")
    parser.add_argument(
        "--query",
        help="Query string or URL carrying a CIK parameter (e.g. '?CIK=320193').",
    )
    parser.add_argument("--cutoff-year", type=int, default=None, help="Exclusive lower bound on year.")
    parser.add_argument("--transport", choices=TRANSPORTS, default=None, help="How to reach the SEC API.")
    parser.add_argument("--relay-url", default=None, help="First-party relay URL template.")
    parser.add_argument("--fallback-file", default=None, help="Local JSON used when the SEC is unreachable.")
    parser.add_argument("--retries", type=int, default=None, help="Extra attempts on network errors (0-2).")
    parser.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds.")
    parser.add_argument("--config", default=None, help="Optional YAML config file.")
    parser.add_argument("--out", default=None, help="Write a data.json summary to this path.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    slots = DisplaySlots()
    try:
        config = load_config(
            Path(args.config) if args.config else None,
            cli_overrides={
                "cutoff_year": args.cutoff_year,
                "transport": args.transport,
                "relay_url": args.relay_url,
                "fallback_path": args.fallback_file,
                "max_retries": args.retries,
                "timeout_seconds": args.timeout,
            },
        )
    except ExtractionError as exc:
        logger.error("invalid configuration: %s", exc)
        bind_error(slots, exc.user_message())
        print(slots.get(SLOT_ERROR), file=sys.stderr)
        return 1

    identifier = args.cik or resolve_cik_from_query(args.query)
    slots, result = run(identifier, config, slots=slots)
    if result is None:
        print(slots.get(SLOT_ERROR), file=sys.stderr)
        return 1

    print(render_text(slots))
    if args.out:
        out_path = Path(args.out)
        try:
            write_summary(out_path, result)
        except OSError as exc:
            logger.error("could not write summary to %s: %s", out_path, exc)
            print(f"error: could not write {out_path}: {exc}", file=sys.stderr)
            return 1
        print(f"saved: {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
