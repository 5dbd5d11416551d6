import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from sec_shares_config import DEFAULT_CUTOFF_YEAR
from sec_shares_errors import MalformedResponseError, NoMatchingDataError
from sec_shares_utils import as_list, as_str_dict, normalize_text

logger = logging.getLogger(__name__)

Number = Union[int, float]

SHARES_UNIT = "shares"
YEAR_LABEL_KEYS = ("fy", "frame")
VALUE_KEYS = ("val", "value")
UNKNOWN_ENTITY = "Unknown Entity"
DECODE_STRICT = "strict"
DECODE_HEURISTIC = "heuristic"
YEAR_TOKEN = re.compile(r"(?<!\d)(?:19|20)\d{2}(?!\d)")


@dataclass(frozen=True)
class Observation:
    year: int
    value: Number
    raw_year_label: str
    form: Optional[str] = None
    end: Optional[str] = None


@dataclass(frozen=True)
class ExtractionResult:
    entity_name: str
    max: Observation
    min: Observation
    cik: Optional[str] = None
    decode_path: str = DECODE_STRICT
    observation_count: int = 0


def parse_year_label(label: Any) -> Optional[int]:
    if label is None or isinstance(label, bool):
        return None
    match = YEAR_TOKEN.search(str(label))
    if not match:
        return None
    return int(match.group(0))


def coerce_value(raw: Any) -> Optional[Number]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return raw if math.isfinite(raw) else None
    if isinstance(raw, str):
        text = raw.strip().replace(",", "")
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def resolve_entity_name(payload: dict[str, Any]) -> str:
    return (
        normalize_text(payload.get("entityName"))
        or normalize_text(payload.get("name"))
        or UNKNOWN_ENTITY
    )


def _first_key(entry: dict[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        if key in entry:
            return key
    return None


def _all_entries_have(items: list[Any], year_keys: Sequence[str], value_keys: Sequence[str]) -> bool:
    if not items:
        return False
    for item in items:
        entry = as_str_dict(item)
        if entry is None:
            return False
        if _first_key(entry, year_keys) is None or _first_key(entry, value_keys) is None:
            return False
    return True


def require_units(payload: dict[str, Any]) -> dict[str, Any]:
    units = as_str_dict(payload.get("units"))
    if units is None:
        raise MalformedResponseError("Response has no 'units' mapping of observations")
    return units


def locate_observations(units: dict[str, Any]) -> tuple[list[Any], str]:
    """Find the raw observation list inside ``units``.

    The strict path takes ``units["shares"]`` whenever it is a list; bad
    entries in it are dropped one by one later. Only when that field is
    missing or not a list are the other unit lists scanned in order, and
    the first one whose entries all expose a year label and a value is
    used. Returns the entries and the decode path taken.
    """
    shares = as_list(units.get(SHARES_UNIT))
    if shares is not None:
        return shares, DECODE_STRICT

    for unit_name, candidate in units.items():
        items = as_list(candidate)
        if items is None:
            continue
        if _all_entries_have(items, YEAR_LABEL_KEYS, VALUE_KEYS):
            logger.info("no %r list; using unit list %r", SHARES_UNIT, unit_name)
            return items, DECODE_HEURISTIC

    return [], DECODE_HEURISTIC


def decode_observation(raw: Any) -> Optional[Observation]:
    entry = as_str_dict(raw)
    if entry is None:
        return None
    year_key = _first_key(entry, YEAR_LABEL_KEYS)
    value_key = _first_key(entry, VALUE_KEYS)
    if year_key is None or value_key is None:
        return None
    raw_label = entry.get(year_key)
    year = parse_year_label(raw_label)
    value = coerce_value(entry.get(value_key))
    if year is None or value is None:
        return None
    return Observation(
        year=year,
        value=value,
        raw_year_label=str(raw_label),
        form=normalize_text(entry.get("form")),
        end=normalize_text(entry.get("end")),
    )


def filter_observations(entries: list[Any], cutoff_year: int) -> list[Observation]:
    observations: list[Observation] = []
    for entry in entries:
        observation = decode_observation(entry)
        if observation is None:
            continue
        if observation.year <= cutoff_year:
            continue
        observations.append(observation)
    return observations


def select_extrema(observations: Sequence[Observation]) -> tuple[Observation, Observation]:
    if not observations:
        raise NoMatchingDataError("No observations to compare")
    highest = observations[0]
    lowest = observations[0]
    for observation in observations[1:]:
        # Strict comparisons keep the first occurrence on ties.
        if observation.value > highest.value:
            highest = observation
        if observation.value < lowest.value:
            lowest = observation
    return highest, lowest


def extract_shares_data(
    payload: Any,
    cutoff_year: int = DEFAULT_CUTOFF_YEAR,
    cik: Optional[str] = None,
) -> ExtractionResult:
    payload_dict = as_str_dict(payload)
    if payload_dict is None:
        raise MalformedResponseError("Response is not a JSON object")
    units = require_units(payload_dict)
    entries, decode_path = locate_observations(units)
    observations = filter_observations(entries, cutoff_year)
    if not observations:
        raise NoMatchingDataError(
            f"No share data found with fy > {cutoff_year} and numeric val",
            cutoff_year=cutoff_year,
        )
    highest, lowest = select_extrema(observations)
    result = ExtractionResult(
        entity_name=resolve_entity_name(payload_dict),
        max=highest,
        min=lowest,
        cik=cik,
        decode_path=decode_path,
        observation_count=len(observations),
    )
    logger.info(
        "extracted %d observations for %s via %s decode",
        result.observation_count,
        result.entity_name,
        decode_path,
    )
    return result
