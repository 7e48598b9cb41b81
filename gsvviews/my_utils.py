"""
Utility module for Street View panorama view extraction.

This module provides helper functions and classes for:

- Timing code execution (`timer` context manager).
- Checking whether a tile carries real imagery (`is_valid_tile`).
- Computing retry delays (`backoff_delay`).
- Loading scene ids and writing a cleaned dataset (`open_dataset`, `write_cleaned_dataset`).
- Parsing command-line arguments for the downloader (`parse_args`).
- Saving view images and formatting file sizes (`save_view`, `format_size`).

Dependencies:
- numpy for image pixel analysis
- PIL/Pillow for image handling
- rich for colored terminal output
- argparse for CLI argument parsing
- csv, json and os for dataset management and file handling
"""
import argparse
import csv
import json
import os
import random
import re
import time
from typing import Iterable, Optional, Union

import numpy as np
from PIL import Image
from rich import print

from .constants import (
    BLACK_TILE_MEAN,
    MAX_BACKOFF,
    MIN_TILE_SIDE,
    PANOID_HEADERS,
    SCENE_ID_LENGTH,
)

SCENE_ID_RE = re.compile(rf"^[A-Za-z0-9_-]{{{SCENE_ID_LENGTH}}}$")


class timer:
    """
    Context manager to measure elapsed execution time.

    Usage:
        with timer():
            # your code here
    -----
    >>> with timer() as t:
    ...     # some code to measure
    ...     time.sleep(2)
    >>> print(t.time_elapsed)
    '0h 0m 2.00s'
    """

    def __enter__(self):
        self.start = time.time()
        self.time_elapsed = None
        return self

    def __exit__(self, *args):
        self.end = time.time()
        self.interval = self.end - self.start
        hrs, rem = divmod(self.interval, 3600)
        mins, secs = divmod(rem, 60)
        self.time_elapsed = f"{int(hrs)}h {int(mins)}m {secs:.2f}s"
        return False


def is_valid_tile(tile: Union[Image.Image, np.ndarray], threshold: float = BLACK_TILE_MEAN) -> bool:
    """
    Check whether a decoded tile holds real imagery.

    Missing tiles come back from the service as solid black JPEGs. A tile is
    valid when it is at least 10x10 pixels and its mean grayscale level is
    above `threshold`.

    Args:
        tile (PIL.Image.Image | np.ndarray): RGB tile to check.
        threshold (float, optional): Minimum mean luminance. Defaults to 0.1.

    Returns:
        bool: True if the tile is usable.
    """
    arr = np.asarray(tile)
    if arr.ndim < 2 or arr.shape[0] < MIN_TILE_SIDE or arr.shape[1] < MIN_TILE_SIDE:
        return False

    if arr.ndim == 3:
        rgb = arr[..., :3].astype(np.float32)
        gray = rgb[..., 0] * 0.299 + rgb[..., 1] * 0.587 + rgb[..., 2] * 0.114
    else:
        gray = arr.astype(np.float32)

    return float(gray.mean()) > threshold


def backoff_delay(attempt: int, rng: Optional[random.Random] = None) -> float:
    """
    Delay before retry `attempt` (1-based): ``min(2**attempt + U[0, 1), 10)``.

    Args:
        attempt (int): Retry number, 1 for the first retry.
        rng (random.Random, optional): Jitter source. Defaults to the module RNG.

    Returns:
        float: Seconds to sleep.
    """
    jitter = (rng or random).random()
    return min(2.0 ** attempt + jitter, MAX_BACKOFF)


def is_valid_scene_id(value: str) -> bool:
    """Return True for 22-character ids made of alphanumerics, `_` and `-`."""
    return bool(SCENE_ID_RE.match(value))


def extract_scene_id(cell: str) -> str:
    """
    Pull a scene id out of a dataset cell.

    Cells sometimes carry extra text after the id. When the first 22
    characters form a valid id they are returned, otherwise the cell is
    returned unchanged.
    """
    if is_valid_scene_id(cell):
        return cell
    if len(cell) >= SCENE_ID_LENGTH and is_valid_scene_id(cell[:SCENE_ID_LENGTH]):
        return cell[:SCENE_ID_LENGTH]
    return cell


def detect_delimiter(sample_line: str) -> str:
    """Pick the most frequent of `;`, tab and `,` in a line, defaulting to `,`."""
    commas = sample_line.count(",")
    semicolons = sample_line.count(";")
    tabs = sample_line.count("\t")

    if semicolons > commas and semicolons > tabs:
        return ";"
    if tabs > commas and tabs > semicolons:
        return "\t"
    return ","


def _read_csv(path: str) -> tuple[str, list[str], list[list[str]], int]:
    with open(path, newline="", encoding="utf-8") as handle:
        first_line = handle.readline()
        if not first_line:
            raise ValueError(f"Empty CSV file: {path}")

        delimiter = detect_delimiter(first_line)
        handle.seek(0)
        reader = csv.reader(handle, delimiter=delimiter)
        rows = [[cell.strip() for cell in row] for row in reader]

    headers, rows = rows[0], [row for row in rows[1:] if any(row)]

    column = 0
    for index, header in enumerate(headers):
        if header.lower() in PANOID_HEADERS:
            column = index
            break

    return delimiter, headers, rows, column


def _read_lines(path: str) -> list[str]:
    with open(path, encoding="utf-8") as handle:
        content = handle.read()

    scene_ids = []
    for line in content.splitlines():
        line = line.strip()
        if not line:
            continue
        delimiter = ";" if ";" in line else ","
        scene_id = line.split(delimiter, 1)[0].strip()
        if scene_id:
            scene_ids.append(scene_id)
    return scene_ids


def open_dataset(dataset_location: str) -> list[str]:
    """
    Load scene ids from a dataset file.

    Supported formats:
        - ``.json``: a list of scene ids.
        - ``.csv``: delimiter is detected from the header row and the id
          column is found by header name (first column otherwise).
        - anything else: one id per line; only the first `,`/`;` field is kept.

    Args:
        dataset_location (str): Path to the dataset file.

    Returns:
        list[str]: Scene ids in file order.
    """
    extension = os.path.splitext(dataset_location)[1].lower()

    if extension == ".json":
        with open(dataset_location) as dataset:
            return [str(scene_id) for scene_id in json.load(dataset)]

    if extension == ".csv":
        try:
            _, _, rows, column = _read_csv(dataset_location)
            scene_ids = [extract_scene_id(row[column]) for row in rows if len(row) > column]
            return [scene_id for scene_id in scene_ids if scene_id]
        except (ValueError, csv.Error) as error:
            print(f"[yellow][DATASET] Error parsing CSV: {error}. Falling back to line parsing.[/]")

    return _read_lines(dataset_location)


def cleaned_dataset_path(dataset_location: str) -> str:
    """Default location of the cleaned dataset: `<stem>_cleaned.csv` next to the input."""
    directory, name = os.path.split(dataset_location)
    stem = os.path.splitext(name)[0]
    return os.path.join(directory, f"{stem}_cleaned.csv")


def write_cleaned_dataset(
    dataset_location: str,
    failed_ids: Iterable[str],
    output_path: Optional[str] = None
) -> Optional[str]:
    """
    Rewrite a CSV dataset without the rows of failed scenes.

    Args:
        dataset_location (str): Input CSV file.
        failed_ids (Iterable[str]): Scene ids to drop.
        output_path (str, optional): Target file. Defaults to `cleaned_dataset_path`.

    Returns:
        str | None: Path written, or None when the input is not a CSV file.
    """
    if os.path.splitext(dataset_location)[1].lower() != ".csv":
        print(f"[yellow][DATASET] `{dataset_location}` is not a CSV file, skipping cleanup[/]")
        return None

    failed = set(failed_ids)
    output_path = output_path or cleaned_dataset_path(dataset_location)
    delimiter, headers, rows, column = _read_csv(dataset_location)

    with open(output_path, "w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle, delimiter=delimiter, lineterminator="\n")
        writer.writerow(headers)
        for row in rows:
            if len(row) > column and extract_scene_id(row[column]) not in failed:
                writer.writerow(row)

    return output_path


def parse_args(argv: Optional[list[str]] = None):
    """
    Parse command-line arguments for the downloader.

    Arguments:
        scene_id (str, optional): Single scene id to process.
        --file (str, optional): Dataset file (.json, .csv or one id per line).
        --output (str, optional): Output directory. (Default: ~/streetview_output)
        --tile-threads (int, optional): Tile downloads per scene. (Default: 128)
        --pano-threads (int, optional): Scenes processed concurrently. (Default: 4)
        --max-threads (int, optional): Maximum pool size. (Default: 512)
        --timeout (float, optional): HTTP timeout in seconds. (Default: 10)
        --retries (int, optional): Attempts per tile. (Default: 3)
        --no-crop, --no-skip, --labels: Behaviour switches.
        --clean-csv [FILE]: Write the dataset without failed scenes.
        --limit (int, optional): Limit scene ids for testing. (Default: None)
        --workers (int, optional): Executor workers for image work. (Default: None)
        --conn-limit (int, optional): Maximum TCP connections per host. (Default: 100)
        --seed (int, optional): Seed for jitter. (Default: None)

    Returns:
        argparse.Namespace: Parsed arguments object.
    """
    parser = argparse.ArgumentParser(
        description="Street View Panorama Downloader - eight perspective views per panorama"
    )

    default_output = os.path.join(os.path.expanduser("~"), "streetview_output")

    parser.add_argument("scene_id", nargs="?", default=None, help="Single scene id to download")
    parser.add_argument("-f", "--file", type=str, default=None, help="File containing scene ids (JSON, CSV or one per line)")
    parser.add_argument("-o", "--output", type=str, default=default_output, help="Output directory for the views")
    parser.add_argument("-t", "--tile-threads", type=int, default=128, help="Number of tile downloads per panorama")
    parser.add_argument("-p", "--pano-threads", type=int, default=4, help="Number of panoramas processed concurrently")
    parser.add_argument("--max-threads", type=int, default=512, help="Maximum total number of workers")
    parser.add_argument("--timeout", type=float, default=10, help="Download timeout in seconds")
    parser.add_argument("--retries", type=int, default=3, help="Number of download attempts per tile")
    parser.add_argument("--no-crop", action="store_true", help="Do not auto-crop panoramas")
    parser.add_argument("--no-skip", action="store_true", help="Do not skip scenes whose views already exist")
    parser.add_argument("--labels", action="store_true", help="Draw tile labels (x, y, zoom)")
    parser.add_argument("--clean-csv", nargs="?", const="", default=None, metavar="FILE",
                        help="Write a cleaned CSV without failed panoramas (optional output path)")
    parser.add_argument("--limit", type=int, default=None, help="Limit scene ids")
    parser.add_argument("--workers", type=int, default=None, help="Max executor workers for stitching and projection")
    parser.add_argument("--conn-limit", type=int, default=100, help="Maximum TCP connections per host (default: 100)")
    parser.add_argument("--seed", type=int, default=None, help="Seed for backoff and view jitter")

    args = parser.parse_args(argv)
    if args.scene_id is None and args.file is None:
        parser.error("a scene id or --file is required")
    return args


def format_size(num_bytes: int) -> str:
    """
    Convert a file size in bytes into a human-readable string.

    Args:
        num_bytes (int): File size in bytes.

    Returns:
        str: Formatted size (e.g., '512.00 KB', '384.00 MB').
    """
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if num_bytes < 1024:
            return f"{num_bytes:.2f} {unit}"
        num_bytes /= 1024
    return f"{num_bytes:.2f} PB"


def save_view(view: np.ndarray, out_path: str, quality: int = 95) -> str:
    """
    Save an RGB view array as JPEG and return its human-readable size.

    Args:
        view (np.ndarray): HxWx3 uint8 image.
        out_path (str): Destination file.
        quality (int, optional): JPEG quality. Defaults to 95.

    Returns:
        str: File size of the saved image (e.g. "84.12 KB").
    """
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with Image.fromarray(view) as img:
        img.save(out_path, format="JPEG", quality=quality)
    return format_size(os.path.getsize(out_path))
