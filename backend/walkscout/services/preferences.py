import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from walkscout.models.preference import Preference
from walkscout.schemas.poi import Coordinate, RegionCode, SchoolLevel, SchoolSector

logger = logging.getLogger(__name__)

SECTORS_KEY = "schoolSectors"
LEVELS_KEY = "schoolTypes"
LAST_LOCATION_KEY = "lastSearchLocation"


class PreferenceStore:
    """JSON values in the preferences table, optionally namespaced per search session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], namespace: str = ""):
        self.session_factory = session_factory
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    async def get(self, key: str, default=None):
        async with self.session_factory() as session:
            row = await session.get(Preference, self._key(key))
        if row is None:
            return default
        try:
            return json.loads(row.value)
        except ValueError:
            logger.warning("Discarding unreadable preference %s", key)
            return default

    async def set(self, key: str, value) -> None:
        async with self.session_factory() as session:
            row = await session.get(Preference, self._key(key))
            if row is None:
                session.add(Preference(key=self._key(key), value=json.dumps(value)))
            else:
                row.value = json.dumps(value)
            await session.commit()


@dataclass(frozen=True)
class FilterPreferences:
    sectors: frozenset[SchoolSector] = frozenset(SchoolSector)
    levels: frozenset[SchoolLevel] = frozenset(SchoolLevel)

    def toggle_sector(self, sector: SchoolSector) -> "FilterPreferences":
        return FilterPreferences(_toggle(self.sectors, sector), self.levels)

    def toggle_level(self, level: SchoolLevel) -> "FilterPreferences":
        return FilterPreferences(self.sectors, _toggle(self.levels, level))


def _toggle(selected: frozenset, member) -> frozenset:
    if member in selected:
        # never deselect the last one
        return selected - {member} if len(selected) > 1 else selected
    return selected | {member}


def _parse_members(raw, enum_cls) -> frozenset:
    if not isinstance(raw, list):
        return frozenset(enum_cls)
    members = set()
    for value in raw:
        try:
            members.add(enum_cls(value))
        except ValueError:
            logger.warning("Ignoring unknown %s preference %r", enum_cls.__name__, value)
    return frozenset(members) or frozenset(enum_cls)


async def load_filter_preferences(store: PreferenceStore) -> FilterPreferences:
    sectors = await store.get(SECTORS_KEY)
    levels = await store.get(LEVELS_KEY)
    return FilterPreferences(
        sectors=_parse_members(sectors, SchoolSector),
        levels=_parse_members(levels, SchoolLevel),
    )


async def save_filter_preferences(store: PreferenceStore, prefs: FilterPreferences) -> None:
    await store.set(SECTORS_KEY, sorted(s.value for s in prefs.sectors))
    await store.set(LEVELS_KEY, sorted(lv.value for lv in prefs.levels))


async def load_last_location(store: PreferenceStore) -> tuple[Coordinate, RegionCode, str] | None:
    raw = await store.get(LAST_LOCATION_KEY)
    if not isinstance(raw, dict):
        return None
    try:
        return (
            Coordinate(lat=raw["lat"], lng=raw["lng"]),
            RegionCode(raw["state"]),
            raw.get("displayName") or "",
        )
    except (KeyError, TypeError, ValueError, ValidationError):
        logger.warning("Discarding unreadable last search location %r", raw)
        return None


async def save_last_location(
    store: PreferenceStore, location: Coordinate, region: RegionCode, display_name: str
) -> None:
    await store.set(LAST_LOCATION_KEY, {
        "lat": location.lat,
        "lng": location.lng,
        "state": region.value,
        "displayName": display_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })
