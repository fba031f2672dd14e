"""
Catalog document parsing.

A catalog document is JSON of the form:

    {
      "version": "2.3",
      "weapons": [
        {"name": "Pistol", "set": "Core", "deck_type": "Starting",
         "category": "Ranged", "default_count": 2,
         "abilities": {"open_door": false, ...},
         "special": null,
         "melee": null,
         "ranged": {"range_min": 0, "range_max": 1, "dice": 1,
                    "accuracy": 4, "damage": 1, "ammo_type": "Bullets"}}
      ]
    }

Parsing is all-or-nothing: a document either yields a fully validated
CatalogDocument or raises before the caller has written anything.
"""

import json
import re
from collections import Counter
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from armory.config import settings
from armory.models.failure import CatalogParseError, VersionFormatError
from armory.models.weapon import (
    Abilities,
    AmmoType,
    Both,
    DeckType,
    Melee,
    MeleeStats,
    Ranged,
    RangedStats,
    WeaponCategory,
    WeaponDefinition,
    WeaponProfile,
    definition_id,
)

VERSION_PATTERN = re.compile(r"\d+(\.\d+)*", re.ASCII)

DECK_LABELS = {
    "starting": DeckType.STARTING,
    "regular": DeckType.REGULAR,
    "ultrared": DeckType.ULTRARED,
}

CATEGORY_LABELS = {
    "melee": WeaponCategory.MELEE,
    "ranged": WeaponCategory.RANGED,
    "both": WeaponCategory.BOTH,
    "dual": WeaponCategory.BOTH,
    "melee ranged": WeaponCategory.BOTH,
}

AMMO_LABELS = {
    "bullets": AmmoType.BULLETS,
    "shells": AmmoType.SHELLS,
    "": AmmoType.NONE,
    "none": AmmoType.NONE,
}


def _normalize_label(value: Any, labels: Mapping[str, Any]) -> Any:
    """Map a case- and whitespace-insensitive label; unknown values pass through."""
    if isinstance(value, str):
        key = " ".join(value.split()).lower()
        return labels.get(key, value)
    return value


# =============================================================================
# VERSIONS
# =============================================================================


def parse_version(version: str) -> tuple[int, ...]:
    """
    Parse a dot-separated version into a comparable tuple.

    Missing trailing components are zero, so trailing zeros are dropped:
    "2.3", "2.3.0" and "2.3.0.0" all parse to (2, 3).

    Raises:
        VersionFormatError: If the version is not dot-separated integers.
    """
    text = version.strip() if isinstance(version, str) else ""
    if not VERSION_PATTERN.fullmatch(text):
        raise VersionFormatError(str(version))

    components = [int(part) for part in text.split(".")]
    while len(components) > 1 and components[-1] == 0:
        components.pop()
    return tuple(components)


def compare_versions(left: str, right: str) -> int:
    """Return -1, 0 or 1 as `left` is older than, equal to or newer than `right`."""
    left_key = parse_version(left)
    right_key = parse_version(right)
    return (left_key > right_key) - (left_key < right_key)


# =============================================================================
# DOCUMENT MODELS
# =============================================================================


class MeleeStatsPayload(BaseModel):
    range: int = Field(default=0, ge=0)
    dice: int = Field(ge=0)
    accuracy: int = Field(ge=0, le=6, description="0 means the attack always hits")
    damage: int = Field(ge=0)
    overload: int = Field(default=0, ge=0)
    kill_noise: bool = False

    def to_stats(self) -> MeleeStats:
        return MeleeStats(
            range=self.range,
            dice=self.dice,
            accuracy=self.accuracy,
            damage=self.damage,
            overload=self.overload,
            kill_noise=self.kill_noise,
        )


class RangedStatsPayload(BaseModel):
    range_min: int = Field(default=0, ge=0)
    range_max: int = Field(default=0, ge=0)
    dice: int = Field(ge=0)
    accuracy: int = Field(ge=0, le=6, description="0 means the attack always hits")
    damage: int = Field(ge=0)
    overload: int = Field(default=0, ge=0)
    kill_noise: bool = False
    ammo_type: AmmoType = AmmoType.NONE

    @field_validator("ammo_type", mode="before")
    @classmethod
    def normalize_ammo(cls, value: Any) -> Any:
        if value is None:
            return AmmoType.NONE
        return _normalize_label(value, AMMO_LABELS)

    @model_validator(mode="after")
    def check_range(self) -> "RangedStatsPayload":
        if self.range_min > self.range_max:
            msg = f"range_min {self.range_min} exceeds range_max {self.range_max}"
            raise ValueError(msg)
        return self

    def to_stats(self) -> RangedStats:
        return RangedStats(
            range_min=self.range_min,
            range_max=self.range_max,
            dice=self.dice,
            accuracy=self.accuracy,
            damage=self.damage,
            overload=self.overload,
            kill_noise=self.kill_noise,
            ammo_type=self.ammo_type,
        )


class AbilitiesPayload(BaseModel):
    open_door: bool = False
    door_noise: bool = False
    kill_noise: bool = False
    dual: bool = False
    overload: bool = False

    def to_abilities(self) -> Abilities:
        return Abilities(
            open_door=self.open_door,
            door_noise=self.door_noise,
            kill_noise=self.kill_noise,
            dual=self.dual,
            overload=self.overload,
        )


class CatalogEntry(BaseModel):
    """One weapon entry of a catalog document."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    set_name: str = Field(alias="set", min_length=1)
    deck_type: DeckType
    category: WeaponCategory
    default_count: int = Field(default=1, ge=0)
    abilities: AbilitiesPayload = Field(default_factory=AbilitiesPayload)
    special: str | None = None
    melee: MeleeStatsPayload | None = None
    ranged: RangedStatsPayload | None = None

    @field_validator("name", "set_name", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("deck_type", mode="before")
    @classmethod
    def normalize_deck_type(cls, value: Any) -> Any:
        return _normalize_label(value, DECK_LABELS)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: Any) -> Any:
        return _normalize_label(value, CATEGORY_LABELS)

    @model_validator(mode="after")
    def check_stats_match_category(self) -> "CatalogEntry":
        needs_melee = self.category in (WeaponCategory.MELEE, WeaponCategory.BOTH)
        needs_ranged = self.category in (WeaponCategory.RANGED, WeaponCategory.BOTH)
        if needs_melee != (self.melee is not None):
            state = "requires" if needs_melee else "must not carry"
            msg = f"{self.category.value} weapon '{self.name}' {state} melee stats"
            raise ValueError(msg)
        if needs_ranged != (self.ranged is not None):
            state = "requires" if needs_ranged else "must not carry"
            msg = f"{self.category.value} weapon '{self.name}' {state} ranged stats"
            raise ValueError(msg)
        return self

    @property
    def id(self) -> str:
        return definition_id(self.deck_type, self.name, self.set_name)

    def profile(self) -> WeaponProfile:
        if self.melee is not None and self.ranged is not None:
            return Both(self.melee.to_stats(), self.ranged.to_stats())
        if self.melee is not None:
            return Melee(self.melee.to_stats())
        if self.ranged is not None:
            return Ranged(self.ranged.to_stats())
        msg = f"Weapon '{self.name}' has no combat stats"
        raise ValueError(msg)

    def to_definition(self, metadata_version: str) -> WeaponDefinition:
        return WeaponDefinition(
            name=self.name,
            set_name=self.set_name,
            deck_type=self.deck_type,
            profile=self.profile(),
            default_count=self.default_count,
            abilities=self.abilities.to_abilities(),
            special=self.special or None,
            metadata_version=metadata_version,
        )


class CatalogDocument(BaseModel):
    """A complete, validated catalog document."""

    version: str
    weapons: list[CatalogEntry] = Field(min_length=1)

    @model_validator(mode="after")
    def check_unique_ids(self) -> "CatalogDocument":
        counts = Counter(entry.id for entry in self.weapons)
        duplicates = sorted(weapon_id for weapon_id, count in counts.items() if count > 1)
        if duplicates:
            msg = f"duplicate weapon ids: {', '.join(duplicates)}"
            raise ValueError(msg)
        return self

    @property
    def version_key(self) -> tuple[int, ...]:
        return parse_version(self.version)

    def definitions(self) -> list[WeaponDefinition]:
        """Domain definitions stamped with this document's version."""
        return [entry.to_definition(self.version) for entry in self.weapons]


# =============================================================================
# LOADING
# =============================================================================


def _summarize_errors(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        parts.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(parts)


def _load_payload(source: Mapping[str, Any] | str | bytes | Path) -> Any:
    if isinstance(source, Mapping):
        return dict(source)
    if isinstance(source, Path):
        try:
            source = source.read_bytes()
        except OSError as e:
            raise CatalogParseError(f"cannot read {source}: {e}") from e
    try:
        return json.loads(source)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CatalogParseError(f"invalid JSON: {e}") from e


def parse_catalog_document(source: Mapping[str, Any] | str | bytes | Path) -> CatalogDocument:
    """
    Parse and validate a catalog document.

    Args:
        source: Already-decoded mapping, JSON text or bytes, or a path to a JSON file

    Returns:
        The validated document.

    Raises:
        CatalogParseError: If the document is malformed
        VersionFormatError: If the declared version cannot be parsed
    """
    payload = _load_payload(source)
    try:
        document = CatalogDocument.model_validate(payload)
    except ValidationError as e:
        raise CatalogParseError(_summarize_errors(e)) from e

    parse_version(document.version)
    return document


def load_bundled_catalog(path: Path | None = None) -> CatalogDocument:
    """Load the catalog shipped with the package (or the configured override)."""
    return parse_catalog_document(path or settings.catalog_path)
