"""
Core module for turning Street View panoramas into directional views.

This module drives each scene through the pipeline:

- Detect the scene's tile layout (`detect_generation`, cached per run).
- Download its tile grid through the shared worker pool (`download_tiles`).
- Stitch, crop and reproject it in one executor call (`render_scene`).

`process_scene` handles one scene and never raises; `fetch_scenes` runs a
whole dataset in sequential batches and returns a `RunReport`.

Dependencies:
- aiohttp for asynchronous HTTP requests
- concurrent.futures for CPU-bound stitching and projection
- rich for colored logging
"""
import asyncio
import os
import random
import threading
from concurrent.futures import Executor, ProcessPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import aiohttp
import numpy as np
from rich import print

from .config import DownloaderConfig
from .constants import HEADERS
from .exceptions import AssemblyFailure, GenerationUndetected, SceneError
from .generation import GenerationCache, GenerationProfile, detect_generation, get_generation_config
from .pool import WorkerPool, batched, pool_size
from .projection import ViewSpec, expected_view_paths, global_rotation, plan_views, render_views
from .stitch import crop_panorama, should_crop, stitch_tiles
from .tiles import download_tiles


class SceneState(Enum):
    PENDING = "pending"
    DETECTING = "detecting"
    DOWNLOADING = "downloading"
    STITCHING = "stitching"
    CROPPING = "cropping"
    PROJECTING = "projecting"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SceneResult:
    """Outcome of one scene. `failed_at` is the step that was running when it failed."""
    scene_id: str
    success: bool = False
    state: SceneState = SceneState.PENDING
    generation: int = 0
    views: list[str] = field(default_factory=list)
    failed_at: Optional[SceneState] = None
    error: Optional[str] = None


@dataclass
class RunReport:
    total: int
    successful: int
    failed: int
    failed_ids: list[str]
    output_dir: str


class RunContext:
    """
    Shared state of one run, passed into every scene task.

    Holds the generation cache, the set of failed scene ids, the progress
    counters and the random generator used for backoff and view jitter.
    """

    def __init__(self, seed: Optional[int] = None, generations: Optional[GenerationCache] = None):
        self.generations = generations if generations is not None else GenerationCache()
        self.rng = random.Random(seed)
        self._lock = threading.Lock()
        self._failed_ids: set[str] = set()
        self.completed = 0
        self.successful = 0
        self.failed = 0

    def record_failure(self, scene_id: str) -> None:
        with self._lock:
            self._failed_ids.add(scene_id)

    def record_result(self, result: SceneResult) -> int:
        """Count a finished scene and return the number completed so far."""
        with self._lock:
            self.completed += 1
            if result.success:
                self.successful += 1
            else:
                self.failed += 1
            return self.completed

    @property
    def failed_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._failed_ids)


def render_scene(
    tiles: dict[tuple[int, int], np.ndarray],
    profile: GenerationProfile,
    scene_id: str,
    output_dir: str,
    specs: list[ViewSpec],
    auto_crop: bool = True,
    draw_labels: bool = False
) -> tuple[list[str], tuple[int, int]]:
    """
    Stitch, crop and reproject one scene inside a single executor call.

    Only the tiles go to the worker and only the view paths come back, so
    the stitched canvas never crosses a process boundary.

    Any exception raised here carries the step that was running in its
    `step` attribute.

    Returns:
        tuple[list[str], tuple[int, int]]: View paths and the (height, width)
        of the panorama they were rendered from.
    """
    step = SceneState.STITCHING
    try:
        panorama = stitch_tiles(tiles, profile.grid_width, profile.grid_height, profile.zoom, draw_labels)
        if panorama is None or panorama.size == 0:
            raise AssemblyFailure("Stitching produced an empty canvas")

        if should_crop(profile.crop, auto_crop, draw_labels):
            step = SceneState.CROPPING
            panorama = crop_panorama(panorama, profile.generation)

        step = SceneState.PROJECTING
        views = render_views(panorama, scene_id, output_dir, specs)
    except Exception as error:
        error.step = step
        raise

    return views, panorama.shape[:2]


async def process_scene(
    session: aiohttp.ClientSession,
    scene_id: str,
    pool: WorkerPool,
    ctx: RunContext,
    config: DownloaderConfig,
    output_dir: str,
    executor: Optional[Executor] = None
) -> SceneResult:
    """
    Download, stitch and reproject a single panorama.

    Steps:
        1. Detect the generation (cached per scene id).
        2. Fetch every tile of the generation's grid through `pool`.
        3. Stitch the valid tiles; missing tiles stay magenta.
        4. Crop when the generation needs it (not when labels are drawn).
        5. Write the eight directional views.

    Steps 3 to 5 run in one executor call (`render_scene`). The view jitter
    is drawn here first, so `ctx.rng` stays the only source of randomness.

    Any failure is logged, recorded in `ctx`, and returned as an
    unsuccessful result; nothing propagates to the caller.

    Args:
        session (aiohttp.ClientSession): Active HTTP session.
        scene_id (str): Panorama id to process.
        pool (WorkerPool): Shared pool for tile downloads.
        ctx (RunContext): Shared run state.
        config (DownloaderConfig): Run settings.
        output_dir (str): Directory for the views.
        executor (Executor | None): Executor for tile decoding, stitching and projection.

    Returns:
        SceneResult: Final state of the scene.
    """
    result = SceneResult(scene_id)
    loop = asyncio.get_running_loop()

    try:
        if config.skip_existing and all(os.path.exists(path) for path in expected_view_paths(scene_id, output_dir)):
            print(f"[green][SKIP] Panoid `{scene_id}` | views already exist[/]")
            result.state = SceneState.SKIPPED
            result.success = True
            return result

        result.state = SceneState.DETECTING

        async def probe(pano_id: str) -> tuple[int, str]:
            return await detect_generation(session, pano_id, retries=config.probe_retries,
                                           timeout=config.timeout, rng=ctx.rng)

        generation, description = await ctx.generations.resolve(scene_id, probe)
        if generation == 0:
            raise GenerationUndetected("Could not detect generation")

        profile = get_generation_config(generation)
        result.generation = generation
        print(f"[cyan][GEN] Panoid `{scene_id}` | Detected {description}[/]")

        result.state = SceneState.DOWNLOADING
        tiles = await download_tiles(
            pool, session, scene_id, profile.zoom, profile.grid_width, profile.grid_height,
            retries=config.retry_count, timeout=config.timeout, rng=ctx.rng,
            tile_threads=config.tile_threads, executor=executor
        )
        if not tiles:
            raise AssemblyFailure("No tiles fetched (may be expired, removed, or invalid)")

        specs = plan_views(ctx.rng)
        print(f"[cyan][VIEW] `{scene_id}` | global rotation {global_rotation(specs):.2f}°[/]")

        result.state = SceneState.STITCHING
        result.views, (height, width) = await loop.run_in_executor(
            executor, render_scene, tiles, profile, scene_id, output_dir, specs,
            config.auto_crop, config.draw_tile_labels
        )

        result.state = SceneState.DONE
        result.success = True
        print(
            f"[green][OK] Panoid `{scene_id}` | gen {generation} "
            f"| w*h {width}x{height} "
            f"| tiles: {len(tiles)}/{profile.tile_count} "
            f"| views: {len(result.views)}[/]"
        )

    except SceneError as error:
        print(f"[yellow][FAIL] Panoid `{scene_id}` | {error}[/]")
        _mark_failed(result, ctx, error)

    except Exception as error:
        print(f"[red][PROCESSING ERROR] Panoid `{scene_id}`: {error}[/]")
        _mark_failed(result, ctx, error)

    return result


def _mark_failed(result: SceneResult, ctx: RunContext, error: Exception) -> None:
    result.failed_at = getattr(error, "step", result.state)
    result.state = SceneState.FAILED
    result.success = False
    result.error = str(error)
    ctx.record_failure(result.scene_id)


def print_failed_ids(failed_ids: list[str]) -> None:
    if not failed_ids:
        print("[green]| No failed panoramas to report.[/]")
        return

    print("[red]===== FAILED PANORAMAS =====[/]")
    print(f"[red]The following {len(failed_ids)} panoramas failed to download:[/]")
    for index, scene_id in enumerate(failed_ids, start=1):
        print(f"[red]{index}. {scene_id}[/]")
    print("[red]============================[/]")


async def fetch_scenes(
    scene_ids: list[str],
    config: Optional[DownloaderConfig] = None,
    output_dir: Optional[str] = None,
    connector: Optional[aiohttp.BaseConnector] = None,
    executor: Optional[Executor] = None,
    ctx: Optional[RunContext] = None
) -> RunReport:
    """
    Process many panoramas with scene-level and tile-level concurrency.

    Scenes are submitted to one `WorkerPool` in batches of
    `2 * pano_threads`; each batch finishes before the next starts. The
    scene tasks submit their tiles into the same pool.

    Args:
        scene_ids (list[str]): Panorama ids in processing order.
        config (DownloaderConfig, optional): Run settings. Defaults to `DownloaderConfig()`.
        output_dir (str, optional): Output directory. Defaults to the current directory.
        connector (aiohttp.BaseConnector, optional): Connector for the HTTP session.
        executor (Executor, optional): Executor for image work. A process pool
            with `config.workers` workers is created when omitted.
        ctx (RunContext, optional): Shared state; a fresh one is created when omitted.

    Returns:
        RunReport: Totals, failed ids and the output directory.
    """
    config = (config or DownloaderConfig()).validate()
    ctx = ctx or RunContext(config.seed)
    output_dir = str(output_dir or os.getcwd())
    os.makedirs(output_dir, exist_ok=True)

    pool = WorkerPool(pool_size(config.max_total_threads, config.tile_threads, config.pano_threads))
    batch_size = max(1, min(config.batch_size, pool.size - 1))
    total = len(scene_ids)

    print("[green]| Running Scraper..[/]\n")
    print(f"[cyan]| {total} panoramas | pool of {pool.size} workers | batches of {batch_size}[/]")

    if connector is None:
        connector = aiohttp.TCPConnector(limit=pool.size, limit_per_host=config.conn_limit)

    executor_cm = nullcontext(executor) if executor is not None else ProcessPoolExecutor(max_workers=config.workers)

    async with aiohttp.ClientSession(connector=connector, headers=HEADERS) as session:
        with executor_cm as image_executor:
            for batch in batched(scene_ids, batch_size):
                handles = [
                    pool.submit(process_scene, session, scene_id, pool, ctx, config, output_dir, image_executor)
                    for scene_id in batch
                ]

                for handle in handles:
                    completed = ctx.record_result(await handle)
                    if completed % 5 == 0 or completed == total:
                        print(
                            f"[orange1][PROGRESS] {completed}/{total} complete "
                            f"({ctx.successful} successful, {ctx.failed} failed)[/]"
                        )

    failed_ids = ctx.failed_ids
    if failed_ids:
        print_failed_ids(failed_ids)

    return RunReport(total, ctx.successful, ctx.failed, failed_ids, output_dir)
