import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from sec_shares_extract import ExtractionResult, Number, Observation

SLOT_ENTITY_NAME = "share-entity-name"
SLOT_MAX_VALUE = "share-max-value"
SLOT_MAX_FY = "share-max-fy"
SLOT_MIN_VALUE = "share-min-value"
SLOT_MIN_FY = "share-min-fy"
SLOT_ERROR = "error"
DATA_SLOTS = (SLOT_ENTITY_NAME, SLOT_MAX_VALUE, SLOT_MAX_FY, SLOT_MIN_VALUE, SLOT_MIN_FY)
ALL_SLOTS = DATA_SLOTS + (SLOT_ERROR,)
TITLE_SUFFIX = " - Share Volume"
DEFAULT_ERROR_MESSAGE = "Error loading data. See console for details."


class DisplaySlots:
    """Named output fields plus a page title, keyed by stable slot ids."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None, title: str = "") -> None:
        self.values: dict[str, str] = {slot: "" for slot in ALL_SLOTS}
        if initial:
            for slot, value in initial.items():
                self.set_text(slot, value)
        self.title = title

    def set_text(self, slot: str, value: Any) -> None:
        if slot not in self.values:
            raise KeyError(f"Unknown display slot: {slot}")
        self.values[slot] = "" if value is None else str(value)

    def get(self, slot: str) -> str:
        return self.values[slot]

    def data_populated(self) -> bool:
        return any(self.values[slot] for slot in DATA_SLOTS)


def format_value(value: Number) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def year_label_text(observation: Observation) -> str:
    return observation.raw_year_label or str(observation.year)


def build_title(entity_name: str) -> str:
    return f"{entity_name}{TITLE_SUFFIX}"


def bind_result(slots: DisplaySlots, result: ExtractionResult) -> None:
    slots.title = build_title(result.entity_name)
    slots.set_text(SLOT_ENTITY_NAME, result.entity_name)
    slots.set_text(SLOT_MAX_VALUE, format_value(result.max.value))
    slots.set_text(SLOT_MAX_FY, year_label_text(result.max))
    slots.set_text(SLOT_MIN_VALUE, format_value(result.min.value))
    slots.set_text(SLOT_MIN_FY, year_label_text(result.min))
    slots.set_text(SLOT_ERROR, "")


def bind_error(slots: DisplaySlots, message: str = DEFAULT_ERROR_MESSAGE) -> None:
    slots.set_text(SLOT_ERROR, message)


def render_text(slots: DisplaySlots) -> str:
    lines = [f"title\t{slots.title or '-'}"]
    for slot in ALL_SLOTS:
        lines.append(f"{slot}\t{slots.get(slot) or '-'}")
    return "\n".join(lines)


def build_summary(result: ExtractionResult) -> dict[str, Any]:
    return {
        "entityName": result.entity_name,
        "max": {"val": result.max.value, "fy": year_label_text(result.max)},
        "min": {"val": result.min.value, "fy": year_label_text(result.min)},
    }


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.tmp")
    with tmp_path.open("wb") as handle:
        handle.write(data)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)


def write_summary(path: Path, result: ExtractionResult) -> None:
    content = json.dumps(build_summary(result), indent=2)
    atomic_write_bytes(path, content.encode("utf-8"))
