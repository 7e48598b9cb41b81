"""
Tests for generation detection and the generation cache.

Usage:
    pytest gsvviews/tests/test_generation.py
"""
import asyncio
from unittest.mock import MagicMock

import pytest

from .. import generation
from ..generation import GenerationCache, GenerationProfile, detect_generation, get_generation_config
from .helpers import FakeTileServer


@pytest.mark.parametrize(
    "gen, zoom, grid",
    [(1, 3, (8, 4)), (2, 4, (13, 6)), (3, 4, (13, 7)), (4, 4, (16, 8))]
)
def test_get_generation_config(gen, zoom, grid):
    profile = get_generation_config(gen)
    assert profile.generation == gen
    assert profile.zoom == zoom
    assert (profile.grid_width, profile.grid_height) == grid
    assert profile.tile_count == grid[0] * grid[1]


def test_only_generation_4_is_not_cropped():
    assert [get_generation_config(g).crop for g in (1, 2, 3, 4)] == [True, True, True, False]


@pytest.mark.parametrize("unknown", [0, 5, -1, 99])
def test_get_generation_config_falls_back_to_4(unknown):
    assert get_generation_config(unknown) == get_generation_config(4)


def test_profile_is_immutable():
    profile = get_generation_config(2)
    with pytest.raises(AttributeError):
        profile.zoom = 5
    assert isinstance(profile, GenerationProfile)


def session_for(server):
    session = MagicMock()
    session.get.side_effect = server
    return session


@pytest.mark.parametrize(
    "valid, expected",
    [
        ({(4, 15, 7)}, 4),
        ({(4, 14, 6)}, 4),
        ({(4, 12, 6)}, 3),
        ({(4, 11, 5)}, 3),
        ({(4, 12, 5), (4, 10, 4)}, 2),
        ({(3, 7, 3)}, 1),
        ({(3, 6, 2)}, 1),
    ]
)
@pytest.mark.asyncio
async def test_detect_generation_patterns(valid, expected):
    server = FakeTileServer(valid)
    gen, description = await detect_generation(session_for(server), "fake_panoid")
    assert gen == expected
    assert description.startswith(f"Generation {expected}")
    assert "Default" not in description


@pytest.mark.asyncio
async def test_detect_generation_prefers_finest_grid():
    server = FakeTileServer({(4, 15, 7), (4, 12, 5), (3, 7, 3)})
    gen, _ = await detect_generation(session_for(server), "fake_panoid")
    assert gen == 4
    assert server.requests == [("fake_panoid", 4, 15, 7)]


@pytest.mark.asyncio
async def test_detect_generation_fallback_zoom4_center():
    server = FakeTileServer({(4, 8, 4)})
    gen, description = await detect_generation(session_for(server), "fake_panoid")
    assert gen == 4
    assert description.endswith("- Default")


@pytest.mark.asyncio
async def test_detect_generation_fallback_zoom3_center():
    server = FakeTileServer({(3, 4, 2)})
    gen, description = await detect_generation(session_for(server), "fake_panoid")
    assert gen == 1
    assert description == "Generation 1 (Zoom 3, 8x4) - Default"


@pytest.mark.asyncio
async def test_detect_generation_unknown():
    server = FakeTileServer(set())
    gen, description = await detect_generation(session_for(server), "fake_panoid")
    assert (gen, description) == (0, "Unknown Generation")
    # 8 pattern probes + 2 fallback probes, one attempt each
    assert len(server.requests) == 10


@pytest.mark.asyncio
async def test_cache_resolves_once():
    cache = GenerationCache()
    calls = []

    async def probe(scene_id):
        calls.append(scene_id)
        return 2, "Generation 2 (Zoom 4, 13x6)"

    first = await cache.resolve("scene", probe)
    second = await cache.resolve("scene", probe)

    assert first == second == (2, "Generation 2 (Zoom 4, 13x6)")
    assert calls == ["scene"]
    assert "scene" in cache
    assert cache.get("scene") == first


@pytest.mark.asyncio
async def test_cache_shares_inflight_probe():
    cache = GenerationCache()
    calls = []

    async def probe(scene_id):
        calls.append(scene_id)
        await asyncio.sleep(0.01)
        return 3, "Generation 3 (Zoom 4, 13x7)"

    results = await asyncio.gather(*(cache.resolve("scene", probe) for _ in range(5)))

    assert calls == ["scene"]
    assert all(result == (3, "Generation 3 (Zoom 4, 13x7)") for result in results)


@pytest.mark.asyncio
async def test_cache_remembers_failed_detection():
    cache = GenerationCache()
    calls = []

    async def probe(scene_id):
        calls.append(scene_id)
        return 0, "Unknown Generation"

    await cache.resolve("dead", probe)
    assert await cache.resolve("dead", probe) == (0, "Unknown Generation")
    assert calls == ["dead"]


@pytest.mark.asyncio
async def test_cache_probe_error_is_not_cached():
    cache = GenerationCache()

    async def probe(scene_id):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        await cache.resolve("scene", probe)
    assert "scene" not in cache
    assert len(cache) == 0


def test_cache_set_and_get():
    cache = GenerationCache()
    assert cache.get("x") is None
    cache.set("x", 1, "Generation 1 (Zoom 3, 8x4)")
    assert cache.get("x") == (1, "Generation 1 (Zoom 3, 8x4)")
    assert len(cache) == 1


@pytest.mark.asyncio
async def test_probe_tile_uses_single_attempt(monkeypatch):
    seen = {}

    async def fake_fetch_tile(session, scene_id, x, y, zoom, **kwargs):
        seen.update(kwargs)
        return generation.tiles.TileImage(x, y, zoom)

    monkeypatch.setattr(generation.tiles, "fetch_tile", fake_fetch_tile)

    assert await generation.probe_tile(None, "fake_panoid", 4, 1, 1) is False
    assert seen["retries"] == 1
    assert seen["quiet"] is True
