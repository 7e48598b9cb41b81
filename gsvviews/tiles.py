"""
Tile fetching for Street View panoramas.

- `fetch_tile` downloads one tile with timeout, retries and exponential
  backoff, and checks that it carries real imagery.
- `download_tiles` fans a whole tile grid out over the shared worker pool.

Dependencies:
- aiohttp for asynchronous HTTP requests
- PIL/Pillow and numpy for decoding tiles
- rich for colored logging
"""
import asyncio
import random
from concurrent.futures import Executor
from dataclasses import dataclass
from io import BytesIO
from typing import Optional

import aiohttp
import numpy as np
from aiohttp import ClientTimeout
from PIL import Image, UnidentifiedImageError
from rich import print

from .constants import CLIENT_ID, TILE_ENDPOINT
from .exceptions import DecodeError, NetworkError, TileError, ValidityError
from .my_utils import backoff_delay, is_valid_tile
from .pool import WorkerPool


@dataclass
class TileImage:
    """One tile of a panorama; `image` is an HxWx3 uint8 array when `valid`."""
    x: int
    y: int
    zoom: int
    image: Optional[np.ndarray] = None
    valid: bool = False


def tile_url(scene_id: str, zoom: int, x: int, y: int) -> str:
    return (
        f"{TILE_ENDPOINT}?cb_client={CLIENT_ID}&panoid={scene_id}"
        f"&output=tile&zoom={zoom}&x={x}&y={y}"
    )


def decode_tile(data: bytes) -> np.ndarray:
    """
    Decode tile bytes into an RGB array and reject black tiles.

    Raises:
        DecodeError: The body is empty or not an image.
        ValidityError: The image is (near) uniformly black.
    """
    if not data:
        raise DecodeError("empty response body")

    try:
        with Image.open(BytesIO(data)) as img:
            arr = np.asarray(img.convert("RGB"))
    except (UnidentifiedImageError, OSError, ValueError) as error:
        raise DecodeError(f"undecodable tile: {error}") from error

    if not is_valid_tile(arr):
        raise ValidityError("black tile")
    return arr


async def _request_tile(
    session: aiohttp.ClientSession,
    url: str,
    timeout: float,
    executor: Optional[Executor] = None
) -> np.ndarray:
    try:
        async with session.get(url, timeout=ClientTimeout(total=timeout)) as response:
            if response.status != 200:
                raise NetworkError(f"HTTP {response.status}")
            data = await response.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as error:
        raise NetworkError(str(error) or type(error).__name__) from error

    # decoding and the luminance check stay off the event loop
    return await asyncio.get_running_loop().run_in_executor(executor, decode_tile, data)


async def fetch_tile(
    session: aiohttp.ClientSession,
    scene_id: str,
    x: int,
    y: int,
    zoom: int,
    retries: int = 3,
    timeout: float = 10,
    rng: Optional[random.Random] = None,
    quiet: bool = False,
    executor: Optional[Executor] = None
) -> TileImage:
    """
    Fetch a single panorama tile with retry support.

    Attempt `i > 0` first sleeps `backoff_delay(i)` seconds. The sleep runs
    inside the caller's pool slot.

    Args:
        session (aiohttp.ClientSession): The active HTTP session.
        scene_id (str): The panorama id to fetch tiles from.
        x (int): Tile X index.
        y (int): Tile Y index.
        zoom (int): Zoom level.
        retries (int): Number of attempts (default: 3).
        timeout (float): Per-request timeout in seconds (default: 10).
        rng (random.Random, optional): Jitter source for the backoff.
        quiet (bool): Do not log the final failure (used by generation probes).
        executor (Executor, optional): Runs `decode_tile`; the loop's default executor when None.

    Returns:
        TileImage: `valid` is False when every attempt failed.
    """
    tile = TileImage(x, y, zoom)
    url = tile_url(scene_id, zoom, x, y)

    for attempt in range(retries):
        if attempt > 0:
            await asyncio.sleep(backoff_delay(attempt, rng))

        try:
            tile.image = await _request_tile(session, url, timeout, executor)
            tile.valid = True
            return tile
        except TileError as error:
            if attempt == retries - 1 and not quiet:
                print(f"[red][TILE ERROR] Failed after {retries} attempts for tile ({x},{y}) pano `{scene_id}`: {error}[/]")

    return tile


async def download_tiles(
    pool: WorkerPool,
    session: aiohttp.ClientSession,
    scene_id: str,
    zoom: int,
    grid_w: int,
    grid_h: int,
    retries: int = 3,
    timeout: float = 10,
    rng: Optional[random.Random] = None,
    tile_threads: Optional[int] = None,
    executor: Optional[Executor] = None
) -> dict[tuple[int, int], np.ndarray]:
    """
    Download every tile of a `grid_w` x `grid_h` grid through the pool.

    All tasks are submitted at once; results are collected in submission
    order, so the progress lines follow that order rather than arrival.

    Returns:
        dict[tuple[int, int], np.ndarray]: Valid tiles keyed by (x, y).
    """
    total = grid_w * grid_h
    effective = min(tile_threads or pool.size, total, pool.size)
    print(f"[cyan][TILES] `{scene_id}` | {total} tiles at zoom {zoom} | up to {effective} in flight[/]")

    handles = [
        pool.submit(fetch_tile, session, scene_id, x, y, zoom, retries=retries, timeout=timeout,
                    rng=rng, executor=executor)
        for x in range(grid_w)
        for y in range(grid_h)
    ]

    tiles = {}
    for completed, handle in enumerate(handles, start=1):
        tile = await handle
        if tile.valid:
            tiles[(tile.x, tile.y)] = tile.image

        if completed % 10 == 0 or completed == total:
            print(f"[cyan][TILES] Downloaded {completed}/{total} tiles for `{scene_id}`[/]")

    print(f"[cyan][TILES] `{scene_id}` | {len(tiles)}/{total} valid tiles[/]")
    return tiles
