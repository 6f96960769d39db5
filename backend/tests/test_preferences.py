import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from walkscout.database import init_db
from walkscout.schemas.poi import Coordinate, RegionCode, SchoolLevel, SchoolSector
from walkscout.services.preferences import (
    FilterPreferences,
    PreferenceStore,
    load_filter_preferences,
    load_last_location,
    save_filter_preferences,
    save_last_location,
)


@pytest.fixture()
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'prefs.db'}")
    await init_db(bind=engine)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.mark.anyio
async def test_get_missing_returns_default(session_factory):
    store = PreferenceStore(session_factory)

    assert await store.get("nothing") is None
    assert await store.get("nothing", ["x"]) == ["x"]


@pytest.mark.anyio
async def test_set_then_overwrite(session_factory):
    store = PreferenceStore(session_factory)

    await store.set("schoolSectors", ["Government"])
    await store.set("schoolSectors", ["Catholic", "Government"])

    assert await store.get("schoolSectors") == ["Catholic", "Government"]


@pytest.mark.anyio
async def test_namespaces_are_isolated(session_factory):
    alice = PreferenceStore(session_factory, namespace="a")
    bob = PreferenceStore(session_factory, namespace="b")

    await alice.set("schoolTypes", ["Primary"])

    assert await alice.get("schoolTypes") == ["Primary"]
    assert await bob.get("schoolTypes") is None


@pytest.mark.anyio
async def test_defaults_select_everything(session_factory):
    prefs = await load_filter_preferences(PreferenceStore(session_factory))

    assert prefs.sectors == frozenset(SchoolSector)
    assert prefs.levels == frozenset(SchoolLevel)


@pytest.mark.anyio
async def test_save_and_reload(session_factory):
    store = PreferenceStore(session_factory, namespace="s1")
    prefs = FilterPreferences(
        sectors=frozenset({SchoolSector.GOVERNMENT}),
        levels=frozenset({SchoolLevel.PRIMARY, SchoolLevel.COMBINED}),
    )

    await save_filter_preferences(store, prefs)

    assert await store.get("schoolTypes") == ["Combined", "Primary"]
    assert await load_filter_preferences(store) == prefs


@pytest.mark.anyio
async def test_unknown_values_are_ignored(session_factory):
    store = PreferenceStore(session_factory)
    await store.set("schoolSectors", ["Government", "Homeschool"])
    await store.set("schoolTypes", ["Kindergarten"])

    prefs = await load_filter_preferences(store)

    assert prefs.sectors == frozenset({SchoolSector.GOVERNMENT})
    assert prefs.levels == frozenset(SchoolLevel)


@pytest.mark.anyio
async def test_last_location_round_trip(session_factory):
    store = PreferenceStore(session_factory, namespace="s1")

    assert await load_last_location(store) is None
    await save_last_location(store, Coordinate(lat=-27.47, lng=153.03), RegionCode.QLD, "Brisbane")

    assert await load_last_location(store) == (Coordinate(lat=-27.47, lng=153.03), RegionCode.QLD, "Brisbane")
    assert "timestamp" in await store.get("lastSearchLocation")


@pytest.mark.anyio
async def test_unreadable_last_location_is_discarded(session_factory):
    store = PreferenceStore(session_factory)
    await store.set("lastSearchLocation", {"lat": "north", "lng": 151.2, "state": "NSW"})

    assert await load_last_location(store) is None


class TestToggle:
    def test_toggle_removes_and_adds(self):
        prefs = FilterPreferences().toggle_sector(SchoolSector.CATHOLIC)
        assert SchoolSector.CATHOLIC not in prefs.sectors

        prefs = prefs.toggle_sector(SchoolSector.CATHOLIC)
        assert prefs.sectors == frozenset(SchoolSector)

    def test_last_member_is_kept(self):
        prefs = FilterPreferences(levels=frozenset({SchoolLevel.SECONDARY}))

        assert prefs.toggle_level(SchoolLevel.SECONDARY).levels == frozenset({SchoolLevel.SECONDARY})

    def test_toggle_leaves_other_dimension(self):
        prefs = FilterPreferences().toggle_level(SchoolLevel.PRIMARY)

        assert prefs.sectors == frozenset(SchoolSector)
        assert prefs.levels == frozenset({SchoolLevel.SECONDARY, SchoolLevel.COMBINED})
