"""
SQLAlchemy ORM models for persistent storage.

Models mirror the weapon dataclasses but add database persistence.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from armory.models.weapon import SlotType


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class WeaponDefinitionDB(Base):
    """
    One weapon catalog entry.

    The primary key is the deterministic "deckType:name:set" identity, so
    re-imports find the same row and customization references stay valid.
    """

    __tablename__ = "weapon_definitions"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), index=True)
    set_name: Mapped[str] = mapped_column(String(255), index=True)
    deck_type: Mapped[str] = mapped_column(String(20), index=True)
    category: Mapped[str] = mapped_column(String(20), index=True)
    default_count: Mapped[int] = mapped_column(Integer, default=1)

    # Combat stats stored as JSON; which of the two is set follows the category
    melee_stats: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ranged_stats: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Abilities
    can_open_door: Mapped[bool] = mapped_column(Boolean, default=False)
    door_noise: Mapped[bool] = mapped_column(Boolean, default=False)
    kill_noise: Mapped[bool] = mapped_column(Boolean, default=False)
    is_dual: Mapped[bool] = mapped_column(Boolean, default=False)
    has_overload: Mapped[bool] = mapped_column(Boolean, default=False)
    special: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Metadata
    metadata_version: Mapped[str] = mapped_column(String(50))
    is_deprecated: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    card_instances: Mapped[list["CardInstanceDB"]] = relationship(back_populates="definition")

    def __repr__(self) -> str:
        return f"<WeaponDefinitionDB(id={self.id}, deprecated={self.is_deprecated})>"


class CardInstanceDB(Base):
    """
    One physical copy of a weapon definition.

    Catalog-origin instances are created by catalog imports; migration-origin
    instances are created ad hoc for legacy inventory entries. Retired
    instances exceed the current count but are kept while inventory refers to them.
    """

    __tablename__ = "card_instances"
    __table_args__ = (UniqueConstraint("definition_id", "copy_index", name="uq_definition_copy"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    definition_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("weapon_definitions.id"), index=True, nullable=False
    )
    copy_index: Mapped[int] = mapped_column(Integer)
    serial: Mapped[str] = mapped_column(String(300), unique=True)
    origin: Mapped[str] = mapped_column(String(20), default="catalog")
    is_retired: Mapped[bool] = mapped_column(Boolean, default=False)

    definition: Mapped["WeaponDefinitionDB"] = relationship(back_populates="card_instances")

    def __repr__(self) -> str:
        return f"<CardInstanceDB(serial={self.serial}, origin={self.origin})>"


class GameSessionDB(Base):
    """
    A played game session.

    Only the fields the inventory engine reads are mapped here. The two
    legacy text fields are kept verbatim as an audit trail after migration.
    """

    __tablename__ = "game_sessions"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_name: Mapped[str] = mapped_column(String(255), default="")
    active_weapons: Mapped[str] = mapped_column(Text, default="")
    inactive_weapons: Mapped[str] = mapped_column(Text, default="")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    inventory_items: Mapped[list["InventoryItemDB"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<GameSessionDB(id={self.id}, character={self.character_name})>"


class InventoryItemDB(Base):
    """One inventory slot occupant."""

    __tablename__ = "inventory_items"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("game_sessions.id", ondelete="CASCADE"), index=True
    )
    card_instance_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("card_instances.id"), index=True, nullable=False
    )
    slot_type: Mapped[str] = mapped_column(String(20))
    slot_index: Mapped[int] = mapped_column(Integer)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    session: Mapped["GameSessionDB"] = relationship(back_populates="inventory_items")
    card_instance: Mapped["CardInstanceDB"] = relationship()

    @property
    def is_equipped(self) -> bool:
        return self.slot_type == SlotType.ACTIVE.value

    def __repr__(self) -> str:
        return f"<InventoryItemDB(session={self.session_id}, {self.slot_type}[{self.slot_index}])>"


class DeckPresetDB(Base):
    """A named, reusable set of deck customizations."""

    __tablename__ = "deck_presets"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    last_used: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    customizations: Mapped[list["DeckCustomizationDB"]] = relationship(
        back_populates="preset",
        cascade="all, delete-orphan",
        order_by="DeckCustomizationDB.priority",
    )

    def __repr__(self) -> str:
        return f"<DeckPresetDB(name={self.name}, default={self.is_default})>"


class DeckCustomizationDB(Base):
    """
    Enable/disable and count override for one weapon definition.

    A record without a preset is a global customization.
    """

    __tablename__ = "deck_customizations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    definition_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("weapon_definitions.id"), index=True
    )
    preset_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("deck_presets.id", ondelete="CASCADE"), index=True, nullable=True
    )
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    count_override: Mapped[int | None] = mapped_column(Integer, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    preset: Mapped["DeckPresetDB | None"] = relationship(back_populates="customizations")

    def __repr__(self) -> str:
        return (
            f"<DeckCustomizationDB(definition={self.definition_id}, preset={self.preset_id}, "
            f"enabled={self.is_enabled}, count={self.count_override})>"
        )


class CatalogVersionDB(Base):
    """Import bookkeeping singleton."""

    __tablename__ = "catalog_version"

    id: Mapped[str] = mapped_column(String(20), primary_key=True, default="singleton")
    latest_imported: Mapped[str] = mapped_column(String(50))
    last_checked: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<CatalogVersionDB(version={self.latest_imported})>"
