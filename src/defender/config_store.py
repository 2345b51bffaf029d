"""
Declarative State File Format

Line-oriented ``key = value`` reader/writer for the small TOML-like files the
agent writes. Only the structures the agent produces are supported:

- top-level ``key = value`` pairs (``#`` comments and blank lines skipped)
- ``[section]`` and ``[[table]]`` headers; keys below a header belong to it
- single-line ``["a", "b"]`` string arrays

Everything here is a pure text transform. Callers own file I/O.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

COMMENT_MARKER = "#"
TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
NULL_LITERAL = "null"
MAX_UNSIGNED = 2 ** 64 - 1

_UNSIGNED_RE = re.compile(r"^\+?[0-9]+$")
_ARRAY_ITEM_RE = re.compile(r'\s*(?:"([^"]*)"|([^,"]*?))\s*(?:,|$)')


@dataclass(frozen=True)
class Entry:
    """A single ``key = value`` line and the section it belongs to."""

    key: str
    value: str
    section: Optional[str] = None
    table_index: int = 0
    line_number: int = 0

    @property
    def is_top_level(self) -> bool:
        return self.section is None


def iter_lines(text: str) -> Iterator[Tuple[int, str]]:
    """Yield (line_number, stripped_line) for every meaningful line."""
    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith(COMMENT_MARKER):
            continue
        yield number, line


def split_key_value(line: str) -> Optional[Tuple[str, str]]:
    """Split ``key = value``. Returns None when the line has no key."""
    idx = line.find("=")
    if idx <= 0:
        return None
    key = line[:idx].strip()
    if not key:
        return None
    return key, line[idx + 1:].strip()


def section_name(line: str) -> Optional[str]:
    """Return the header name for ``[name]`` / ``[[name]]`` lines, else None."""
    if not (line.startswith("[") and line.endswith("]")):
        return None
    return line.strip("[]").strip()


def iter_entries(text: str) -> Iterator[Entry]:
    """
    Walk every key/value entry in document order.

    ``[[name]]`` headers open a new table instance; ``table_index`` counts
    instances of the same name from zero so repeated tables stay distinct.
    """
    current: Optional[str] = None
    counters: Dict[str, int] = {}

    for number, line in iter_lines(text):
        header = section_name(line)
        if header is not None:
            current = header
            if line.startswith("[["):
                counters[header] = counters.get(header, -1) + 1
            continue

        pair = split_key_value(line)
        if pair is None:
            continue

        key, value = pair
        yield Entry(
            key=key,
            value=value,
            section=current,
            table_index=counters.get(current, 0) if current else 0,
            line_number=number,
        )


def parse(text: str) -> Dict[str, str]:
    """
    Extract top-level fields.

    Lines after the first section header are not considered. Duplicate keys
    resolve to the last occurrence. Values are returned raw (still quoted).
    """
    fields: Dict[str, str] = {}
    for entry in iter_entries(text):
        if not entry.is_top_level:
            break
        fields[entry.key] = entry.value
    return fields


def tables(text: str, name: str) -> List[Dict[str, str]]:
    """Return the fields of every ``[[name]]`` table, in document order."""
    found: Dict[int, Dict[str, str]] = {}
    for entry in iter_entries(text):
        if entry.section == name:
            found.setdefault(entry.table_index, {})[entry.key] = entry.value

    # Empty tables still count as instances
    count = sum(
        1
        for _, line in iter_lines(text)
        if line.startswith("[[") and section_name(line) == name
    )
    return [found.get(i, {}) for i in range(count)]


def set_top_level_string(text: str, key: str, value: str) -> str:
    """
    Set a top-level string key, preserving the rest of the document.

    An existing top-level line for ``key`` (matched case-insensitively) is
    replaced in place. Otherwise ``key = "value"`` is prepended so it stays
    visible at the top of the file.

    Args:
        text: Current document text (may be empty)
        key: Top-level key to set
        value: String value, rendered quoted

    Returns:
        The updated document text
    """
    rendered = f'{key} = "{value}"'
    lines = text.replace("\r\n", "\n").split("\n")

    for i, raw in enumerate(lines):
        line = raw.strip()
        if section_name(line) is not None:
            break
        if line.startswith(COMMENT_MARKER):
            continue
        pair = split_key_value(line)
        if pair and pair[0].lower() == key.lower():
            lines[i] = rendered
            return "\n".join(lines)

    if lines == [""]:
        return rendered + "\n"
    lines.insert(0, rendered)
    return "\n".join(lines)


# =============================================================================
# Value Coercion
# =============================================================================


def parse_bool(value: Optional[str]) -> bool:
    """Truthy for true/1/yes/on (case-insensitive); False for everything else."""
    if value is None:
        return False
    return value.strip().strip('"').lower() in TRUE_VALUES


def parse_string(value: Optional[str]) -> Optional[str]:
    """Unquote a string value; ``null`` and missing values map to None."""
    if value is None:
        return None
    stripped = value.strip()
    if stripped == NULL_LITERAL:
        return None
    return stripped.strip('"')


def parse_optional_int(value: Optional[str]) -> Optional[int]:
    """Parse an unsigned integer; ``null`` or anything unparsable is None."""
    if value is None:
        return None
    stripped = value.strip()
    if stripped == NULL_LITERAL or not _UNSIGNED_RE.match(stripped):
        return None
    parsed = int(stripped)
    return parsed if parsed <= MAX_UNSIGNED else None


def parse_counter(value: Optional[str]) -> int:
    """Parse an always-present counter field, defaulting to zero."""
    parsed = parse_optional_int(value)
    return parsed if parsed is not None else 0


def parse_string_array(value: Optional[str]) -> Tuple[str, ...]:
    """
    Parse a single-line ``["a", "b"]`` array.

    Multi-line, nested or otherwise unexpected arrays yield an empty tuple.
    """
    if value is None:
        return ()
    stripped = value.strip()
    if not (stripped.startswith("[") and stripped.endswith("]")):
        return ()

    inner = stripped[1:-1].strip()
    if not inner:
        return ()
    if "[" in inner or "]" in inner:
        logger.debug(f"Nested array rejected: {stripped}")
        return ()

    items: List[str] = []
    for match in _ARRAY_ITEM_RE.finditer(inner):
        if match.end() == match.start():
            break
        item = match.group(1) if match.group(1) is not None else match.group(2)
        item = (item or "").strip()
        if item:
            items.append(item)
    return tuple(items)
