"""Run configuration for the downloader."""
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigurationError


@dataclass
class DownloaderConfig:
    """
    Settings for one run of the downloader.

    Attributes:
        retry_count (int): Fetch attempts per tile.
        timeout (float): Per-request HTTP timeout in seconds.
        tile_threads (int): Tile-level concurrency requested per scene.
        pano_threads (int): Scene-level concurrency; batches hold twice this many scenes.
        max_total_threads (int): Hard cap on the shared worker pool.
        auto_crop (bool): Crop panoramas according to their generation.
        skip_existing (bool): Skip scenes whose eight views already exist.
        draw_tile_labels (bool): Draw tile borders and (x, y, zoom) labels.
        probe_retries (int): Fetch attempts per generation probe coordinate.
        workers (int | None): Executor workers for stitching and projection.
        conn_limit (int): Maximum TCP connections per host.
        seed (int | None): Seed for backoff and view jitter.
        clean_csv (bool): Write a cleaned copy of the input dataset.
        clean_csv_path (str | None): Where to write the cleaned dataset.
    """
    retry_count: int = 3
    timeout: float = 10
    tile_threads: int = 128
    pano_threads: int = 4
    max_total_threads: int = 512
    auto_crop: bool = True
    skip_existing: bool = True
    draw_tile_labels: bool = False
    probe_retries: int = 1
    workers: Optional[int] = None
    conn_limit: int = 100
    seed: Optional[int] = None
    clean_csv: bool = False
    clean_csv_path: Optional[str] = None

    @property
    def batch_size(self) -> int:
        return 2 * self.pano_threads

    def validate(self) -> "DownloaderConfig":
        for name in ("retry_count", "tile_threads", "pano_threads", "max_total_threads",
                     "probe_retries", "conn_limit"):
            value = getattr(self, name)
            if value < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {value}")
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be > 0, got {self.timeout}")
        if self.workers is not None and self.workers < 1:
            raise ConfigurationError(f"workers must be >= 1, got {self.workers}")
        return self

    @classmethod
    def from_args(cls, args) -> "DownloaderConfig":
        """Build a config from the namespace returned by `parse_args`."""
        return cls(
            retry_count=args.retries,
            timeout=args.timeout,
            tile_threads=args.tile_threads,
            pano_threads=args.pano_threads,
            max_total_threads=args.max_threads,
            auto_crop=not args.no_crop,
            skip_existing=not args.no_skip,
            draw_tile_labels=args.labels,
            workers=args.workers,
            conn_limit=args.conn_limit,
            seed=args.seed,
            clean_csv=args.clean_csv is not None,
            clean_csv_path=args.clean_csv or None,
        ).validate()
