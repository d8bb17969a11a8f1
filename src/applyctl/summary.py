"""Summary log protocol.

Every apply run leaves two records in the summary log::

    Oct 17 09:12:01 web01: STARTING APPLY {platform: 0.6.2, user: alice}
    Oct 17 09:13:44 web01: APPLY COMPLETE (changes made) {platform: 0.6.2, user: alice}

The ``{...}`` block is plain text, not a serialisation format. Fields are
separated by ``", "`` and keys from values by ``": "``, so neither sequence may
appear inside a key or value. Malformed input degrades to
:data:`INVALID_INFO` instead of failing the run.
"""
from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path

FIELD_SEPARATOR = ", "
VALUE_SEPARATOR = ": "
INVALID_FORMAT = "INVALID_FORMAT"
INVALID_INFO: Mapping[str, str] = {"platform": INVALID_FORMAT}

START_EVENT = "STARTING APPLY"
FINISH_EVENT = "APPLY COMPLETE"

EXIT_CODE_DESCRIPTIONS: dict[int, str] = {
    0: "no changes",
    1: "failed",
    2: "changes made",
    4: "failed",
    6: "changes and failures",
}

_RECORD_PATTERN = re.compile(
    r"^(?P<timestamp>[A-Z][a-z]{2} +\d{1,2} \d{2}:\d{2}:\d{2}) "
    r"(?P<hostname>\S+): "
    r"(?P<message>.*)$"
)
# The info block runs from the first "{" to the closing "}" at the end of the
# line, so values may themselves contain braces.
_METADATA_PATTERN = re.compile(r"^(?P<event>[^{]*?) ?\{(?P<body>.*)\}$")


@dataclass(frozen=True, slots=True)
class SummaryRecord:
    """One parsed summary log line."""

    timestamp: str
    hostname: str
    event: str
    metadata: Mapping[str, str] = field(default_factory=dict)


def parse_info(text: str | None) -> dict[str, str]:
    """Parse ``"k: v, k: v"`` into a mapping.

    Blank input yields an empty mapping. Anything that does not split into
    non-empty keys paired with a single value yields a copy of
    :data:`INVALID_INFO`.
    """
    if text is None or not text.strip():
        return {}
    info: dict[str, str] = {}
    for item in text.strip().split(FIELD_SEPARATOR):
        parts = item.split(VALUE_SEPARATOR)
        if len(parts) != 2:
            return dict(INVALID_INFO)
        key, value = parts[0].strip(), parts[1].strip()
        if not key:
            return dict(INVALID_INFO)
        info[key] = value
    return info


def format_info(info: Mapping[str, str]) -> str:
    """Render *info* as ``{k: v, ...}`` preserving insertion order."""
    body = FIELD_SEPARATOR.join(f"{key}{VALUE_SEPARATOR}{value}" for key, value in info.items())
    return "{" + body + "}"


def describe_exit_code(code: int) -> str:
    """Return the human description of an apply-engine exit status."""
    return EXIT_CODE_DESCRIPTIONS.get(code, str(code))


def start_marker(info: Mapping[str, str]) -> str:
    """Return the summary message emitted before the apply engine runs."""
    return f"{START_EVENT} {format_info(info)}"


def finish_marker(description: str, info: Mapping[str, str]) -> str:
    """Return the summary message emitted once the apply engine has exited."""
    return f"{FINISH_EVENT} ({description}) {format_info(info)}"


def parse_record(line: str) -> SummaryRecord | None:
    """Parse a summary log line, returning ``None`` when it does not match."""
    match = _RECORD_PATTERN.match(line.rstrip("\r\n"))
    if match is None:
        return None
    message = match.group("message").strip()
    event = message
    metadata: dict[str, str] = {}
    meta_match = _METADATA_PATTERN.match(message)
    if meta_match is not None:
        event = meta_match.group("event").strip()
        metadata = parse_info(meta_match.group("body"))
    return SummaryRecord(
        timestamp=match.group("timestamp"),
        hostname=match.group("hostname"),
        event=event,
        metadata=metadata,
    )


def read_records(path: Path) -> Iterator[SummaryRecord]:
    """Yield parsed records from *path* in file order, skipping unknown lines."""
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            record = parse_record(line)
            if record is not None:
                yield record


__all__ = [
    "EXIT_CODE_DESCRIPTIONS",
    "FINISH_EVENT",
    "INVALID_FORMAT",
    "INVALID_INFO",
    "START_EVENT",
    "SummaryRecord",
    "describe_exit_code",
    "finish_marker",
    "format_info",
    "parse_info",
    "parse_record",
    "read_records",
    "start_marker",
]
