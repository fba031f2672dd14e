"""
Failure classification for the catalog and inventory engine.

Every failure the engine surfaces is a KnownError carrying a FailureKind, a
short message, an optional technical detail and an optional suggestion.

Failure scopes:
- Catalog failures are fatal to one import call; catalog state is left
  exactly as it was before the call.
- Migration failures are scoped to one game session and never stop a batch.
- Legacy-entry parse and lookup failures are the only intentionally silent
  ones: they are caught, logged and the entry is skipped.
"""

from collections.abc import Sequence
from enum import Enum


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input failures
    PARSE_ERROR = "parse_error"
    VERSION_FORMAT = "version_format"

    # Resource failures
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    CONFLICT = "conflict"

    # Constraint violations
    VALIDATION_FAILED = "validation_failed"
    INVALID_STATE = "invalid_state"


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the engine knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message} ({self.detail})"
        return self.message


# =============================================================================
# CATALOG FAILURES
# =============================================================================


class CatalogParseError(KnownError):
    """Raised when a catalog document is malformed. Nothing is written."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(
            kind=FailureKind.PARSE_ERROR,
            message="Catalog document could not be parsed.",
            detail=detail,
            suggestion="Check the document against the catalog format.",
        )


class VersionFormatError(KnownError):
    """Raised when a declared catalog version is not dot-separated integers."""

    def __init__(self, version: str) -> None:
        self.version = version
        super().__init__(
            kind=FailureKind.VERSION_FORMAT,
            message=f"Unparsable catalog version '{version}'.",
            suggestion="Use dot-separated non-negative integers, e.g. '2.3.0'.",
        )


class DuplicateDefinitionError(KnownError):
    """Raised when inserting a definition whose deterministic id already exists."""

    def __init__(self, definition_id: str) -> None:
        self.definition_id = definition_id
        super().__init__(
            kind=FailureKind.DUPLICATE,
            message=f"Weapon definition '{definition_id}' already exists.",
        )


class CatalogValidationError(KnownError):
    """Raised when the persisted catalog violates a consistency rule."""

    def __init__(self, violations: Sequence[str]) -> None:
        self.violations = list(violations)
        super().__init__(
            kind=FailureKind.VALIDATION_FAILED,
            message="Catalog validation failed.",
            detail="; ".join(self.violations),
        )


# =============================================================================
# LEGACY INVENTORY FAILURES
# =============================================================================


class InventoryEntryError(KnownError):
    """Raised for one malformed legacy inventory entry."""

    def __init__(self, raw_entry: str, reason: str) -> None:
        self.raw_entry = raw_entry
        super().__init__(
            kind=FailureKind.PARSE_ERROR,
            message=f"Malformed inventory entry '{raw_entry}'.",
            detail=reason,
        )


class CatalogLookupError(KnownError, LookupError):
    """Raised when a legacy entry's name and set have no catalog match."""

    def __init__(self, name: str, set_name: str) -> None:
        self.name = name
        self.set_name = set_name
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"Weapon not found in catalog: {name}|{set_name}",
        )


class MigrationValidationError(KnownError):
    """
    Raised when a migrated session fails post-migration validation.

    The session's newly created records have already been removed when this
    is raised; its legacy text is untouched.
    """

    def __init__(self, violations: Sequence[str], session_id: int | None = None) -> None:
        self.violations = list(violations)
        self.session_id = session_id
        super().__init__(
            kind=FailureKind.VALIDATION_FAILED,
            message="Inventory migration validation failed.",
            detail="; ".join(self.violations),
            suggestion="Legacy inventory text was preserved; fix the data and retry.",
        )


# =============================================================================
# CUSTOMIZATION AND DECK FAILURES
# =============================================================================


class PresetNotFoundError(KnownError, LookupError):
    def __init__(self, preset_id: int) -> None:
        self.preset_id = preset_id
        super().__init__(
            kind=FailureKind.NOT_FOUND,
            message=f"Preset {preset_id} not found.",
        )


class PresetConflictError(KnownError):
    """Raised when a preset name is already taken and the caller chose to reject."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            kind=FailureKind.CONFLICT,
            message=f"A preset named '{name}' already exists.",
            suggestion="Import with the rename or overwrite conflict policy.",
        )


class CannotDeleteLastDefaultError(KnownError):
    def __init__(self) -> None:
        super().__init__(
            kind=FailureKind.INVALID_STATE,
            message="Cannot delete the last default preset.",
        )


class DeckNotLoadedError(KnownError):
    """Raised when a deck operation runs before the deck was loaded."""

    def __init__(self, deck_type: str) -> None:
        self.deck_type = deck_type
        super().__init__(
            kind=FailureKind.INVALID_STATE,
            message=f"{deck_type} deck has not been loaded.",
            suggestion="Call load() before drawing or shuffling.",
        )
