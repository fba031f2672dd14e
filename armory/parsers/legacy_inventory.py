"""
Parser for legacy free-text inventory fields.

Grammar:
    field = entry (";" entry)*
    entry = name "|" set

Whitespace around tokens and separators is insignificant and blank segments
are ignored, so "Pistol|Core; ;Crowbar | Core;" holds two entries.
"""

from dataclasses import dataclass, field

from armory.models.failure import InventoryEntryError

ENTRY_SEPARATOR = ";"
FIELD_SEPARATOR = "|"


@dataclass(frozen=True, slots=True)
class LegacyEntry:
    """One parsed legacy entry with the raw text it came from."""

    name: str
    set_name: str
    raw: str


@dataclass
class LegacyParseResult:
    entries: list[LegacyEntry] = field(default_factory=list)
    malformed: list[InventoryEntryError] = field(default_factory=list)


def parse_inventory_entry(raw: str) -> LegacyEntry:
    """
    Parse a single "name|set" entry.

    Raises:
        InventoryEntryError: If the entry does not match the grammar.
    """
    text = raw.strip()
    parts = text.split(FIELD_SEPARATOR)
    if len(parts) != 2:
        reason = "missing '|' separator" if len(parts) == 1 else "more than one '|' separator"
        raise InventoryEntryError(raw, reason)

    name, set_name = (part.strip() for part in parts)
    if not name:
        raise InventoryEntryError(raw, "empty weapon name")
    if not set_name:
        raise InventoryEntryError(raw, "empty set name")
    return LegacyEntry(name=name, set_name=set_name, raw=text)


def parse_inventory_text(text: str | None) -> LegacyParseResult:
    """
    Parse a whole legacy field.

    Malformed entries are collected rather than raised, so one bad entry
    never hides the good ones around it.
    """
    result = LegacyParseResult()
    if not text:
        return result

    for segment in text.split(ENTRY_SEPARATOR):
        if not segment.strip():
            continue
        try:
            result.entries.append(parse_inventory_entry(segment))
        except InventoryEntryError as e:
            result.malformed.append(e)
    return result
