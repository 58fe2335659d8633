"""Loading and normalizing the rider roster CSV into canonical stops."""

from __future__ import annotations

import csv
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Sequence

from ..config import settings
from ..errors import SchemaError
from ..models.domain import Address, Stop

logger = logging.getLogger(__name__)

_DIRECTIONALS = {
    "north": "n",
    "south": "s",
    "east": "e",
    "west": "w",
    "northeast": "ne",
    "northwest": "nw",
    "southeast": "se",
    "southwest": "sw",
}

_SUFFIXES = {
    "street": "st",
    "str": "st",
    "avenue": "ave",
    "av": "ave",
    "road": "rd",
    "drive": "dr",
    "boulevard": "blvd",
    "lane": "ln",
    "court": "ct",
    "place": "pl",
    "terrace": "ter",
    "circle": "cir",
    "parkway": "pkwy",
    "highway": "hwy",
    "trail": "trl",
    "square": "sq",
    "apartment": "apt",
    "suite": "ste",
}

_TOKEN_MAP = {**_DIRECTIONALS, **_SUFFIXES}

_PLACEHOLDER_NOTES = {"", "none", "n/a", "na", "no", "-", "nothing"}


@dataclass(frozen=True, slots=True)
class RosterColumns:
    """Header names of the roster export; address columns are required."""

    street: str = "Home Address Street"
    city: str = "Home Address City"
    state: str = "Home Address State"
    zip: str = "Home Address Zip"
    category: str = "Which service do you need a ride to?"
    first_name: str = "First Name"
    last_name: str = "Last Name"
    phones: tuple[str, ...] = ("Mobile Phone Number", "Home Phone Number", "Work Phone Number")
    rider_count: str = "Number of Riders"
    notes: str = (
        "Please list any physical needs that would affect transportation. "
        "If you don't have any, type NONE."
    )
    role: str = "Role"

    @property
    def required(self) -> tuple[str, ...]:
        return (self.street, self.city, self.state, self.zip)


@dataclass(slots=True)
class RosterTable:
    fieldnames: list[str]
    rows: list[dict[str, str]]


@dataclass(slots=True)
class NormalizationResult:
    stops: list[Stop]
    dropped_incomplete: int = 0
    excluded_non_riders: int = 0
    merged_duplicates: int = 0


@dataclass(slots=True)
class _Merged:
    stop: Stop
    phones: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)


def _decode_roster(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass
    try:
        text = content.decode("cp1252")
    except UnicodeDecodeError as exc:
        raise SchemaError("Roster file is not UTF-8 or Windows-1252 text.") from exc
    logger.info("Roster is not UTF-8; decoded as cp1252")
    return text


def read_roster(content: str | bytes) -> RosterTable:
    """Parse CSV text with a header row into a list of row mappings.

    Bytes are read as UTF-8, falling back to cp1252 for spreadsheet exports.
    """

    if isinstance(content, bytes):
        content = _decode_roster(content)
    elif content.startswith("\ufeff"):
        content = content[1:]
    reader = csv.DictReader(io.StringIO(content, newline=""))
    if not reader.fieldnames:
        raise SchemaError("Roster file is missing a header row.")
    fieldnames = [name.strip() for name in reader.fieldnames]
    reader.fieldnames = fieldnames
    rows: list[dict[str, str]] = []
    for row in reader:
        if not any((value or "").strip() for key, value in row.items() if key is not None):
            continue  # blank line
        rows.append({key: (value or "") for key, value in row.items() if key is not None})
    return RosterTable(fieldnames=fieldnames, rows=rows)


def normalize_address(text: str) -> str:
    """Canonical comparison key for an address line.

    Lower-cases, strips punctuation, collapses whitespace and abbreviates
    directionals and street suffixes. Applying it twice changes nothing.
    """

    cleaned = re.sub(r"[.,;#]", " ", text.lower())
    tokens = [_TOKEN_MAP.get(token, token) for token in cleaned.split()]
    return " ".join(tokens)


def _clean(row: Mapping[str, str], column: str) -> str:
    return (row.get(column) or "").strip()


def _parse_rider_count(value: str) -> int:
    if not value:
        return 1
    try:
        count = int(float(value))
    except (ValueError, OverflowError):
        return 1
    return max(count, 1)


def _is_placeholder(note: str) -> bool:
    return note.strip().rstrip(".").lower() in _PLACEHOLDER_NOTES


def _append_unique(target: list[str], values: Iterable[str]) -> None:
    for value in values:
        if value and value not in target:
            target.append(value)


def normalize_records(
    rows: Sequence[Mapping[str, str]],
    columns: RosterColumns | None = None,
    *,
    fieldnames: Sequence[str] | None = None,
    non_rider_keywords: Sequence[str] | None = None,
) -> NormalizationResult:
    """Turn raw roster rows into deduplicated stops.

    Rows missing any address field are dropped, rows whose role column names a
    non-rider keyword are excluded and rows sharing a normalized address are
    merged into a single stop with summed rider counts.
    """

    columns = columns or RosterColumns()
    if non_rider_keywords is None:
        non_rider_keywords = settings.non_rider_keywords
    keywords = tuple(keyword.lower() for keyword in non_rider_keywords)
    headers = set(fieldnames if fieldnames is not None else (rows[0].keys() if rows else ()))
    missing = [name for name in columns.required if name not in headers]
    if missing:
        raise SchemaError(f"Required address columns not found in roster: {', '.join(missing)}")

    result = NormalizationResult(stops=[])
    merged: dict[str, _Merged] = {}

    for row in rows:
        street, city, state, zip_code = (_clean(row, name) for name in columns.required)
        if not (street and city and state and zip_code):
            result.dropped_incomplete += 1
            continue

        role = _clean(row, columns.role).lower()
        if role and any(keyword in role for keyword in keywords):
            result.excluded_non_riders += 1
            continue

        address = Address(street=street, city=city, state=state, zip=zip_code)
        phones = [_clean(row, column) for column in columns.phones]
        note = _clean(row, columns.notes)
        notes = [] if _is_placeholder(note) else [note]
        categories = _clean(row, columns.category).split()
        count = _parse_rider_count(_clean(row, columns.rider_count))

        key = normalize_address(address.full_address)
        entry = merged.get(key)
        if entry is None:
            name = f"{_clean(row, columns.first_name)} {_clean(row, columns.last_name)}".strip()
            stop = Stop(
                id=f"stop-{len(merged) + 1:04d}",
                name=name or street,
                address=address,
                rider_count=count,
            )
            entry = _Merged(stop=stop)
            merged[key] = entry
        else:
            entry.stop.rider_count += count
            result.merged_duplicates += 1
        _append_unique(entry.phones, phones)
        _append_unique(entry.notes, notes)
        _append_unique(entry.categories, categories)

    for entry in merged.values():
        entry.stop.phone = ", ".join(entry.phones)
        entry.stop.notes = "; ".join(entry.notes)
        entry.stop.category = " ".join(entry.categories)
        result.stops.append(entry.stop)

    logger.info(
        f"Normalized roster: {len(result.stops)} stops "
        f"({result.merged_duplicates} merged, {result.dropped_incomplete} incomplete, "
        f"{result.excluded_non_riders} non-riders)"
    )
    return result


def origin_stop_from_settings() -> Optional[Stop]:
    """Depot stop from configuration, or None when no depot address is set."""

    if not settings.origin_configured:
        return None
    return Stop(
        id="origin",
        name=settings.origin_name,
        address=Address(
            street=settings.origin_street or "",
            city=settings.origin_city or "",
            state=settings.origin_state or "",
            zip=settings.origin_zip or "",
        ),
        rider_count=0,
    )
