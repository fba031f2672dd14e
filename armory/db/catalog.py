"""
Card catalog store.

Async read/write access to weapon definitions, their card instances and the
catalog version singleton. One CardCatalog wraps one database session and is
constructed by the composition root; it is never a module-level singleton.

INVARIANTS:
- Definition ids are computed from deck type, name and set; callers never
  supply them.
- Definitions are never hard-deleted, only deprecated.
- An instance referenced by an inventory item is never deleted.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from armory.models.db import (
    CardInstanceDB,
    CatalogVersionDB,
    InventoryItemDB,
    WeaponDefinitionDB,
)
from armory.models.failure import DuplicateDefinitionError
from armory.models.weapon import (
    Abilities,
    AmmoType,
    Both,
    CardInstance,
    DeckType,
    InstanceOrigin,
    Melee,
    MeleeStats,
    Ranged,
    RangedStats,
    WeaponCategory,
    WeaponDefinition,
    WeaponProfile,
)

CATALOG_VERSION_KEY = "singleton"

# Order used to break ties when several deck types share a name and set
DECK_PRIORITY = {DeckType.STARTING.value: 0, DeckType.REGULAR.value: 1, DeckType.ULTRARED.value: 2}


# --- Conversion ---


def _melee_to_json(stats: MeleeStats) -> dict[str, Any]:
    return {
        "range": stats.range,
        "dice": stats.dice,
        "accuracy": stats.accuracy,
        "damage": stats.damage,
        "overload": stats.overload,
        "kill_noise": stats.kill_noise,
    }


def _ranged_to_json(stats: RangedStats) -> dict[str, Any]:
    return {
        "range_min": stats.range_min,
        "range_max": stats.range_max,
        "dice": stats.dice,
        "accuracy": stats.accuracy,
        "damage": stats.damage,
        "overload": stats.overload,
        "kill_noise": stats.kill_noise,
        "ammo_type": stats.ammo_type.value,
    }


def _melee_from_json(data: dict[str, Any]) -> MeleeStats:
    return MeleeStats(
        range=data.get("range", 0),
        dice=data["dice"],
        accuracy=data["accuracy"],
        damage=data["damage"],
        overload=data.get("overload", 0),
        kill_noise=data.get("kill_noise", False),
    )


def _ranged_from_json(data: dict[str, Any]) -> RangedStats:
    return RangedStats(
        range_min=data.get("range_min", 0),
        range_max=data.get("range_max", 0),
        dice=data["dice"],
        accuracy=data["accuracy"],
        damage=data["damage"],
        overload=data.get("overload", 0),
        kill_noise=data.get("kill_noise", False),
        ammo_type=AmmoType(data.get("ammo_type", "")),
    )


def _profile_from_row(row: WeaponDefinitionDB) -> WeaponProfile:
    category = WeaponCategory(row.category)
    if category is WeaponCategory.MELEE and row.melee_stats is not None:
        return Melee(_melee_from_json(row.melee_stats))
    if category is WeaponCategory.RANGED and row.ranged_stats is not None:
        return Ranged(_ranged_from_json(row.ranged_stats))
    if row.melee_stats is not None and row.ranged_stats is not None:
        return Both(_melee_from_json(row.melee_stats), _ranged_from_json(row.ranged_stats))
    msg = f"Definition {row.id} has no stats for category {row.category}"
    raise ValueError(msg)


def definition_to_model(row: WeaponDefinitionDB) -> WeaponDefinition:
    """Convert a database definition to a domain model."""
    return WeaponDefinition(
        name=row.name,
        set_name=row.set_name,
        deck_type=DeckType(row.deck_type),
        profile=_profile_from_row(row),
        default_count=row.default_count,
        abilities=Abilities(
            open_door=row.can_open_door,
            door_noise=row.door_noise,
            kill_noise=row.kill_noise,
            dual=row.is_dual,
            overload=row.has_overload,
        ),
        special=row.special,
        metadata_version=row.metadata_version,
        is_deprecated=row.is_deprecated,
    )


def instance_to_model(row: CardInstanceDB, definition: WeaponDefinition) -> CardInstance:
    """Convert a database card instance to a domain model."""
    return CardInstance(
        id=row.id,
        copy_index=row.copy_index,
        definition=definition,
        origin=InstanceOrigin(row.origin),
    )


def _apply_definition(row: WeaponDefinitionDB, definition: WeaponDefinition) -> None:
    """Copy every mutable field of a domain definition onto a row."""
    profile = definition.profile
    row.category = profile.category.value
    row.default_count = definition.default_count
    row.melee_stats = None
    row.ranged_stats = None
    if isinstance(profile, Melee):
        row.melee_stats = _melee_to_json(profile.stats)
    elif isinstance(profile, Ranged):
        row.ranged_stats = _ranged_to_json(profile.stats)
    else:
        row.melee_stats = _melee_to_json(profile.melee)
        row.ranged_stats = _ranged_to_json(profile.ranged)

    row.can_open_door = definition.abilities.open_door
    row.door_noise = definition.abilities.door_noise
    row.kill_noise = definition.abilities.kill_noise
    row.is_dual = definition.abilities.dual
    row.has_overload = definition.abilities.overload
    row.special = definition.special or None

    row.metadata_version = definition.metadata_version
    row.is_deprecated = False
    row.last_updated = datetime.now(UTC)


class CardCatalog:
    """
    Canonical store of weapon definitions and card instances.

    Writes are flushed, never committed; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def session(self) -> AsyncSession:
        return self._session

    # --- Definition lookups ---

    async def _get_row(self, definition_id: str) -> WeaponDefinitionDB | None:
        return await self._session.get(WeaponDefinitionDB, definition_id)

    async def get_definition(self, definition_id: str) -> WeaponDefinition | None:
        """Get a definition by its deterministic id. Returns None if absent."""
        row = await self._get_row(definition_id)
        return definition_to_model(row) if row else None

    async def find_definition(
        self, name: str, set_name: str, deck_type: DeckType | None = None
    ) -> WeaponDefinition | None:
        """
        Look up a definition by name and set.

        When several deck types carry the same name and set, live definitions
        win over deprecated ones, then Starting, Regular, Ultrared order.
        """
        query = select(WeaponDefinitionDB).where(
            WeaponDefinitionDB.name == name,
            WeaponDefinitionDB.set_name == set_name,
        )
        if deck_type is not None:
            query = query.where(WeaponDefinitionDB.deck_type == deck_type.value)
        result = await self._session.execute(query)
        rows = list(result.scalars().all())
        if not rows:
            return None
        rows.sort(key=lambda row: (row.is_deprecated, DECK_PRIORITY.get(row.deck_type, 99)))
        return definition_to_model(rows[0])

    async def list_definitions(self, include_deprecated: bool = True) -> list[WeaponDefinition]:
        query = select(WeaponDefinitionDB).order_by(WeaponDefinitionDB.id)
        if not include_deprecated:
            query = query.where(WeaponDefinitionDB.is_deprecated.is_(False))
        result = await self._session.execute(query)
        return [definition_to_model(row) for row in result.scalars().all()]

    async def list_by_deck_type(
        self, deck_type: DeckType, include_deprecated: bool = False
    ) -> list[WeaponDefinition]:
        """List definitions of one deck, ordered by id."""
        query = (
            select(WeaponDefinitionDB)
            .where(WeaponDefinitionDB.deck_type == deck_type.value)
            .order_by(WeaponDefinitionDB.id)
        )
        if not include_deprecated:
            query = query.where(WeaponDefinitionDB.is_deprecated.is_(False))
        result = await self._session.execute(query)
        return [definition_to_model(row) for row in result.scalars().all()]

    async def list_by_category(
        self, category: WeaponCategory, include_deprecated: bool = False
    ) -> list[WeaponDefinition]:
        """List definitions of one combat category, ordered by id."""
        query = (
            select(WeaponDefinitionDB)
            .where(WeaponDefinitionDB.category == category.value)
            .order_by(WeaponDefinitionDB.id)
        )
        if not include_deprecated:
            query = query.where(WeaponDefinitionDB.is_deprecated.is_(False))
        result = await self._session.execute(query)
        return [definition_to_model(row) for row in result.scalars().all()]

    # --- Definition writes ---

    async def add_definition(self, definition: WeaponDefinition) -> WeaponDefinition:
        """
        Insert a new definition under its computed id.

        Raises DuplicateDefinitionError if the id already exists.
        """
        if await self._get_row(definition.id) is not None:
            raise DuplicateDefinitionError(definition.id)

        row = WeaponDefinitionDB(
            id=definition.id,
            name=definition.name,
            set_name=definition.set_name,
            deck_type=definition.deck_type.value,
        )
        _apply_definition(row, definition)
        self._session.add(row)
        await self._session.flush()
        return definition_to_model(row)

    async def update_definition(self, definition: WeaponDefinition) -> WeaponDefinition:
        """
        Update mutable fields of an existing definition in place.

        The id, and so every customization and instance reference, is kept.
        A deprecated definition becomes live again.

        Raises LookupError if no definition has this id.
        """
        row = await self._get_row(definition.id)
        if row is None:
            msg = f"Weapon definition '{definition.id}' not found"
            raise LookupError(msg)
        _apply_definition(row, definition)
        await self._session.flush()
        return definition_to_model(row)

    async def deprecate_definition(self, definition_id: str) -> bool:
        """
        Mark a definition deprecated.

        Returns True if the flag changed, False if already deprecated or absent.
        """
        row = await self._get_row(definition_id)
        if row is None or row.is_deprecated:
            return False
        row.is_deprecated = True
        row.last_updated = datetime.now(UTC)
        await self._session.flush()
        return True

    # --- Instances ---

    async def _instance_rows(
        self,
        definition_id: str,
        include_retired: bool = False,
        origin: InstanceOrigin | None = None,
    ) -> list[CardInstanceDB]:
        query = (
            select(CardInstanceDB)
            .where(CardInstanceDB.definition_id == definition_id)
            .order_by(CardInstanceDB.copy_index)
        )
        if not include_retired:
            query = query.where(CardInstanceDB.is_retired.is_(False))
        if origin is not None:
            query = query.where(CardInstanceDB.origin == origin.value)
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def _next_copy_index(self, definition_id: str) -> int:
        result = await self._session.execute(
            select(func.max(CardInstanceDB.copy_index)).where(
                CardInstanceDB.definition_id == definition_id
            )
        )
        current = result.scalar_one_or_none()
        return (current or 0) + 1

    async def list_instances(
        self,
        definition_id: str,
        include_retired: bool = False,
        origin: InstanceOrigin | None = None,
    ) -> list[CardInstance]:
        """List a definition's instances ordered by copy index."""
        row = await self._get_row(definition_id)
        if row is None:
            return []
        definition = definition_to_model(row)
        rows = await self._instance_rows(definition_id, include_retired, origin)
        return [instance_to_model(instance, definition) for instance in rows]

    async def get_instance(self, instance_id: int) -> CardInstance | None:
        instance = await self._session.get(CardInstanceDB, instance_id)
        if instance is None:
            return None
        row = await self._get_row(instance.definition_id)
        if row is None:
            return None
        return instance_to_model(instance, definition_to_model(row))

    async def add_instances(
        self,
        definition_id: str,
        count: int,
        origin: InstanceOrigin = InstanceOrigin.CATALOG,
    ) -> list[CardInstance]:
        """
        Create `count` new instances with the next free copy indices.

        A brand-new definition therefore gets copy indices 1..count.
        """
        row = await self._get_row(definition_id)
        if row is None:
            msg = f"Weapon definition '{definition_id}' not found"
            raise LookupError(msg)
        if count <= 0:
            return []

        start = await self._next_copy_index(definition_id)
        created = [
            CardInstanceDB(
                definition_id=definition_id,
                copy_index=copy_index,
                serial=f"{definition_id}:{copy_index}",
                origin=origin.value,
                is_retired=False,
            )
            for copy_index in range(start, start + count)
        ]
        self._session.add_all(created)
        await self._session.flush()

        definition = definition_to_model(row)
        return [instance_to_model(instance, definition) for instance in created]

    async def retire_instance(self, instance_id: int) -> None:
        instance = await self._session.get(CardInstanceDB, instance_id)
        if instance is not None and not instance.is_retired:
            instance.is_retired = True
            await self._session.flush()

    async def revive_instance(self, instance_id: int) -> None:
        instance = await self._session.get(CardInstanceDB, instance_id)
        if instance is not None and instance.is_retired:
            instance.is_retired = False
            await self._session.flush()

    async def delete_instance(self, instance_id: int) -> bool:
        """
        Delete an instance that no inventory item refers to.

        Returns True if deleted. Raises ValueError for a referenced instance.
        """
        instance = await self._session.get(CardInstanceDB, instance_id)
        if instance is None:
            return False
        if await self.is_referenced(instance_id):
            msg = f"Card instance {instance.serial} is referenced by inventory"
            raise ValueError(msg)
        await self._session.delete(instance)
        await self._session.flush()
        return True

    async def is_referenced(self, instance_id: int) -> bool:
        result = await self._session.execute(
            select(func.count(InventoryItemDB.id)).where(
                InventoryItemDB.card_instance_id == instance_id
            )
        )
        return result.scalar_one() > 0

    async def referenced_instance_ids(self, definition_id: str) -> set[int]:
        """Ids of a definition's instances that inventory items point at."""
        result = await self._session.execute(
            select(InventoryItemDB.card_instance_id)
            .join(CardInstanceDB, CardInstanceDB.id == InventoryItemDB.card_instance_id)
            .where(CardInstanceDB.definition_id == definition_id)
        )
        return set(result.scalars().all())

    async def claim_free_instance(self, definition_id: str) -> tuple[CardInstance, bool]:
        """
        Get an unreferenced catalog instance, or create one ad hoc.

        Returns:
            Tuple of (instance, created) where created is True if a new
            migration-origin instance was made because every copy is in use.
        """
        referenced = await self.referenced_instance_ids(definition_id)
        for instance in await self.list_instances(definition_id, origin=InstanceOrigin.CATALOG):
            if instance.id not in referenced:
                return instance, False

        created = await self.add_instances(definition_id, 1, origin=InstanceOrigin.MIGRATION)
        return created[0], True

    # --- Catalog version ---

    async def get_catalog_version(self) -> CatalogVersionDB | None:
        return await self._session.get(CatalogVersionDB, CATALOG_VERSION_KEY)

    async def set_catalog_version(self, version: str) -> CatalogVersionDB:
        """Create or update the version singleton."""
        record = await self.get_catalog_version()
        now = datetime.now(UTC)
        if record is None:
            record = CatalogVersionDB(
                id=CATALOG_VERSION_KEY, latest_imported=version, last_checked=now
            )
            self._session.add(record)
        else:
            record.latest_imported = version
            record.last_checked = now
        await self._session.flush()
        return record
