"""
gsvviews - Street View panorama to perspective views downloader

This package downloads Street View panoramas tile by tile and turns each one
into eight perspective views.

Key features:
- Detect each panorama's tile layout (generation 1-4) by probing tiles.
- Fetch tiles concurrently through one bounded pool, with retries and backoff.
- Skip black or missing tiles; gaps stay magenta in the stitched canvas.
- Crop panoramas to their real image area.
- Reproject into eight 90° views (N, NE, ... NW) with randomized jitter.

Example usage::

    import asyncio
    from gsvviews import DownloaderConfig, fetch_scenes, timer
    from rich import print

    async def main():
        dataset = ["list of pano ids"]
        config = DownloaderConfig(pano_threads=4, tile_threads=64, seed=7)
        return await fetch_scenes(dataset, config, output_dir="views")

    with timer() as t:
        report = asyncio.run(main())
        print(f"Processed {report.successful}/{report.total} panos in {t.time_elapsed}")
        print(f"Saved at {report.output_dir}")
"""
from .core import *
from .config import *
from .exceptions import *
from .generation import *
from .pool import *
from .projection import *
from .stitch import *
from .tiles import *
from .my_utils import *
from .constants import *
