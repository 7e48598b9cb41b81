"""
Tile-grid generation detection.

Street View serves panoramas in one of four tile layouts ("generations").
The layout of a scene is not published, so it is found by requesting tiles
that only exist on a given grid (`detect_generation`). Results are memoized
per scene id in a `GenerationCache`.
"""
import asyncio
import random
import threading
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import aiohttp
from rich import print

from .constants import (
    DEFAULT_GENERATION,
    FALLBACK_PROBES,
    GENERATION_DESCRIPTIONS,
    GENERATION_PROBES,
    GENERATIONS,
    UNKNOWN_GENERATION,
)
from . import tiles


@dataclass(frozen=True)
class GenerationProfile:
    """Tile layout of one generation."""
    generation: int
    zoom: int
    grid_width: int
    grid_height: int
    crop: bool

    @property
    def tile_count(self) -> int:
        return self.grid_width * self.grid_height


def get_generation_config(generation: int) -> GenerationProfile:
    """
    Return the layout of `generation`, falling back to generation 4.

    >>> get_generation_config(2)
    GenerationProfile(generation=2, zoom=4, grid_width=13, grid_height=6, crop=True)
    """
    if generation not in GENERATIONS:
        generation = DEFAULT_GENERATION
    zoom, grid_width, grid_height, crop = GENERATIONS[generation]
    return GenerationProfile(generation, zoom, grid_width, grid_height, crop)


async def probe_tile(
    session: aiohttp.ClientSession,
    scene_id: str,
    zoom: int,
    x: int,
    y: int,
    retries: int = 1,
    timeout: float = 10,
    rng: Optional[random.Random] = None
) -> bool:
    """Return True when the tile at (x, y, zoom) exists and is not black."""
    tile = await tiles.fetch_tile(session, scene_id, x, y, zoom, retries=retries,
                                  timeout=timeout, rng=rng, quiet=True)
    return tile.valid


async def detect_generation(
    session: aiohttp.ClientSession,
    scene_id: str,
    retries: int = 1,
    timeout: float = 10,
    rng: Optional[random.Random] = None
) -> tuple[int, str]:
    """
    Detect the tile layout of a scene.

    Patterns are tried from the finest grid (4) to the coarsest (1); the
    first generation with one valid test tile wins. When nothing matches,
    a central zoom-4 tile and then a central zoom-3 tile are tried and
    generation 4 or 1 is assumed.

    Args:
        session (aiohttp.ClientSession): The active HTTP session.
        scene_id (str): Panorama id.
        retries (int): Fetch attempts per probe coordinate (default: 1).
        timeout (float): Per-request timeout in seconds.
        rng (random.Random, optional): Jitter source for retry backoff.

    Returns:
        tuple[int, str]: (generation, description); generation 0 means
        detection failed.
    """
    print(f"[cyan][GEN] Detecting generation for `{scene_id}`[/]")

    for generation, zoom, coords in GENERATION_PROBES:
        for x, y in coords:
            if await probe_tile(session, scene_id, zoom, x, y, retries, timeout, rng):
                return generation, GENERATION_DESCRIPTIONS[generation]

    for generation, zoom, x, y in FALLBACK_PROBES:
        if await probe_tile(session, scene_id, zoom, x, y, retries, timeout, rng):
            return generation, f"{GENERATION_DESCRIPTIONS[generation]} - Default"

    return UNKNOWN_GENERATION


class GenerationCache:
    """
    Per-run memo of detected generations keyed by scene id.

    `resolve` runs the probe at most once per scene id: concurrent callers
    for the same id share the in-flight probe. Failed detections
    (generation 0) are cached too.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._results: dict[str, tuple[int, str]] = {}
        self._inflight: dict[str, asyncio.Future] = {}

    def __contains__(self, scene_id: str) -> bool:
        with self._lock:
            return scene_id in self._results

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def get(self, scene_id: str) -> Optional[tuple[int, str]]:
        with self._lock:
            return self._results.get(scene_id)

    def set(self, scene_id: str, generation: int, description: str) -> None:
        with self._lock:
            self._results[scene_id] = (generation, description)

    async def resolve(
        self,
        scene_id: str,
        probe: Callable[[str], Awaitable[tuple[int, str]]]
    ) -> tuple[int, str]:
        """
        Return the cached generation of `scene_id`, probing once if needed.

        Args:
            scene_id (str): Panorama id.
            probe (Callable): Coroutine function `probe(scene_id) -> (generation, description)`.
        """
        cached = self.get(scene_id)
        if cached is not None:
            print(f"[cyan][GEN] Using cached generation for `{scene_id}`: {cached[1]}[/]")
            return cached

        inflight = self._inflight.get(scene_id)
        if inflight is not None:
            return await asyncio.shield(inflight)

        future = asyncio.get_running_loop().create_future()
        self._inflight[scene_id] = future
        try:
            generation, description = await probe(scene_id)
            self.set(scene_id, generation, description)
            future.set_result((generation, description))
            return generation, description
        except Exception as error:
            future.set_exception(error)
            future.exception()  # waiters re-raise it; nothing left unretrieved
            raise
        finally:
            if not future.done():
                future.cancel()
            del self._inflight[scene_id]
