import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Callable, Optional, cast
from urllib.parse import quote, urlparse

import requests

from sec_shares_config import (
    TRANSPORT_CORS_RELAY,
    TRANSPORT_FALLBACK,
    TRANSPORT_RELAY,
    SharesConfig,
)
from sec_shares_errors import (
    ConfigurationError,
    ExtractionError,
    MalformedResponseError,
    NetworkError,
)
from sec_shares_retry import MAX_REQUESTS_PER_SECOND, RateLimiter, RetryPolicy

logger = logging.getLogger(__name__)

SEC_CONCEPT_URL = (
    "https://data.sec.gov/api/xbrl/companyconcept/CIK{cik10}/dei/"
    "EntityCommonStockSharesOutstanding.json"
)
CIK_WIDTH = 10
BODY_CHUNK_BYTES = 64 * 1024
CIK_PATTERN = re.compile(r"^(?:CIK)?0*(\d{1,10})$", re.IGNORECASE)


def normalize_cik(identifier: Any) -> str:
    text = str(identifier).strip() if identifier is not None else ""
    match = CIK_PATTERN.match(text)
    if not match:
        raise ConfigurationError(f"Invalid CIK: {identifier!r}")
    return match.group(1).zfill(CIK_WIDTH)


def build_concept_url(cik10: str) -> str:
    return SEC_CONCEPT_URL.format(cik10=cik10)


def build_relay_url(template: str, cik10: str, target_url: str) -> str:
    if "{url}" in template or "{cik}" in template:
        return template.replace("{url}", quote(target_url, safe="")).replace("{cik}", cik10)
    separator = "&" if "?" in template else "?"
    return f"{template}{separator}cik={cik10}"


def build_request_url(cik10: str, config: SharesConfig) -> str:
    target = build_concept_url(cik10)
    if config.transport == TRANSPORT_CORS_RELAY:
        return build_relay_url(config.cors_relay_url, cik10, target)
    if config.transport == TRANSPORT_RELAY:
        if not config.relay_url:
            raise ConfigurationError(
                "relay transport selected but no relay URL is set (SEC_SHARES_RELAY_URL)"
            )
        return build_relay_url(config.relay_url, cik10, target)
    return target


def build_headers(url: str, user_agent: str) -> dict[str, str]:
    host = urlparse(url).hostname or ""
    # Relays and browsers may drop User-Agent; nothing downstream relies on it.
    return {
        "User-Agent": user_agent,
        "Accept": "application/json",
        "Accept-Encoding": "gzip, deflate",
        "Host": host,
    }


def read_body(
    response: requests.Response,
    url: str,
    deadline: float,
    timeout: float,
    clock: Callable[[], float],
) -> bytes:
    chunks: list[bytes] = []
    for chunk in response.iter_content(chunk_size=BODY_CHUNK_BYTES):
        if chunk:
            chunks.append(chunk)
        if clock() > deadline:
            raise NetworkError(f"Request timed out after {timeout:g}s", url=url)
    return b"".join(chunks)


def download(
    url: str,
    session: requests.Session,
    limiter: RateLimiter,
    timeout: float,
    user_agent: str,
    clock: Callable[[], float] = time.monotonic,
) -> bytes:
    """Fetch ``url`` once, bounded by ``timeout`` seconds in total.

    The ``requests`` timeout only caps each connect or read, so the body
    is streamed and the overall deadline is checked after every chunk.
    """
    limiter.wait()
    logger.info("GET %s", url)
    deadline = clock() + timeout
    try:
        response = session.get(
            url, headers=build_headers(url, user_agent), timeout=timeout, stream=True
        )
        try:
            if not 200 <= response.status_code < 300:
                raise NetworkError(
                    f"SEC fetch failed: {response.status_code} {response.reason or ''}".strip(),
                    status_code=response.status_code,
                    url=url,
                )
            return read_body(response, url, deadline, timeout, clock)
        finally:
            response.close()
    except requests.Timeout as exc:
        raise NetworkError(f"Request timed out after {timeout:g}s", url=url) from exc
    except requests.RequestException as exc:
        raise NetworkError(f"Request failed: {exc}", url=url) from exc


def parse_concept_json(body: bytes, source: str) -> dict[str, Any]:
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedResponseError(f"Response from {source} is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedResponseError(f"Response from {source} is not a JSON object")
    return cast(dict[str, Any], payload)


def load_fallback_json(path: Path, cause: ExtractionError) -> dict[str, Any]:
    if not path.is_file():
        logger.error("fallback file %s not found", path)
        raise cause
    logger.warning("SEC fetch failed (%s); falling back to %s", cause, path)
    try:
        body = path.read_bytes()
    except OSError as exc:
        logger.error("fallback file %s could not be read: %s", path, exc)
        raise cause from exc
    return parse_concept_json(body, str(path))


def fetch_concept_json(
    cik10: str,
    config: SharesConfig,
    session: Optional[requests.Session] = None,
    limiter: Optional[RateLimiter] = None,
    policy: Optional[RetryPolicy] = None,
) -> dict[str, Any]:
    url = build_request_url(cik10, config)
    policy = policy or RetryPolicy.linear(config.effective_retries(), config.backoff_seconds)
    limiter = limiter or RateLimiter(MAX_REQUESTS_PER_SECOND)
    owns_session = session is None
    active = session or requests.Session()
    try:
        body = policy.call(
            lambda: download(url, active, limiter, config.timeout_seconds, config.user_agent)
        )
        return parse_concept_json(body, url)
    except (NetworkError, MalformedResponseError) as exc:
        # Blocked or HTML pages count as unreachable for the fallback transport.
        if config.transport != TRANSPORT_FALLBACK:
            raise
        return load_fallback_json(config.fallback_path, exc)
    finally:
        if owns_session:
            active.close()
