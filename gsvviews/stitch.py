"""
Panorama assembly: stitching tiles into a canvas and cropping it.

Missing tiles are left in the sentinel colour (magenta) so gaps stay
visible in the output views.
"""
from typing import Optional

import numpy as np
from PIL import Image, ImageDraw, ImageFont
from rich import print

from .constants import GEN1_CROP_SIZE, SENTINEL_COLOR

BORDER_COLOR = (255, 0, 0)
LABEL_COLOR = (255, 255, 0)
OUTLINE_COLOR = (0, 0, 0)
LABEL_BOX = (5, 5, 120, 45)  # offset x, offset y, width, height
LABEL_LINE_HEIGHT = 16


def draw_tile_label(img: Image.Image, x: int, y: int, zoom: int, tile_w: int, tile_h: int) -> None:
    """
    Draw a border and a `x:<x>, y:<y>` / `z:<zoom>` label on one tile of `img`.

    The label sits on a half-transparent black box; the text is drawn with a
    one-pixel black outline.
    """
    pos_x, pos_y = x * tile_w, y * tile_h
    draw = ImageDraw.Draw(img)
    draw.rectangle([pos_x, pos_y, pos_x + tile_w - 1, pos_y + tile_h - 1], outline=BORDER_COLOR, width=2)

    off_x, off_y, box_w, box_h = LABEL_BOX
    box = (
        pos_x + off_x,
        pos_y + off_y,
        min(pos_x + off_x + box_w, img.width),
        min(pos_y + off_y + box_h, img.height),
    )
    region = img.crop(box)
    shaded = Image.blend(region, Image.new("RGB", region.size, (0, 0, 0)), 0.5)
    img.paste(shaded, box[:2])

    font = ImageFont.load_default()
    text_y = pos_y + off_y + 4
    for line in (f"x:{x}, y:{y}", f"z:{zoom}"):
        text_x = pos_x + off_x + 5
        for dx in (-1, 1):
            for dy in (-1, 1):
                draw.text((text_x + dx, text_y + dy), line, fill=OUTLINE_COLOR, font=font)
        draw.text((text_x, text_y), line, fill=LABEL_COLOR, font=font)
        text_y += LABEL_LINE_HEIGHT


def stitch_tiles(
    tiles: dict[tuple[int, int], np.ndarray],
    grid_w: int,
    grid_h: int,
    zoom: int,
    draw_labels: bool = False
) -> Optional[np.ndarray]:
    """
    Combine tiles into a single panorama canvas.

    The tile size is taken from the first tile; the canvas is
    `grid_w * tile_w` by `grid_h * tile_h` and starts out magenta. Tiles
    outside the grid or of a different size are skipped.

    Args:
        tiles (dict): Valid tiles keyed by (x, y).
        grid_w (int): Number of tile columns.
        grid_h (int): Number of tile rows.
        zoom (int): Zoom level, used for labels only.
        draw_labels (bool): Draw tile borders and coordinates.

    Returns:
        np.ndarray | None: HxWx3 uint8 panorama, or None when `tiles` is empty.
    """
    if not tiles:
        return None

    tile_h, tile_w = next(iter(tiles.values())).shape[:2]
    full_img = Image.new("RGB", (grid_w * tile_w, grid_h * tile_h), SENTINEL_COLOR)

    for (x, y), tile in tiles.items():
        if not (0 <= x < grid_w and 0 <= y < grid_h):
            print(f"[yellow][STITCH] Tile ({x},{y}) is outside the {grid_w}x{grid_h} grid, skipped[/]")
            continue
        if tile.shape[:2] != (tile_h, tile_w):
            print(f"[yellow][STITCH] Tile ({x},{y}) is {tile.shape[1]}x{tile.shape[0]}, expected {tile_w}x{tile_h}, skipped[/]")
            continue

        with Image.fromarray(tile) as tile_img:
            full_img.paste(tile_img, (x * tile_w, y * tile_h))

        if draw_labels:
            draw_tile_label(full_img, x, y, zoom, tile_w, tile_h)

    panorama = np.array(full_img)
    full_img.close()
    return panorama


def crop_panorama(panorama: np.ndarray, generation: int) -> np.ndarray:
    """
    Crop a stitched panorama to its real image area.

    - Generation 1: keep at most 3328x1664 from the top-left corner.
    - Other generations: trim the bottom so the height is `width // 2`
      when the canvas is taller than 2:1.

    Never upscales.
    """
    height, width = panorama.shape[:2]

    if generation == 1:
        crop_w, crop_h = GEN1_CROP_SIZE
        return panorama[:min(height, crop_h), :min(width, crop_w)]

    target_height = width // 2
    if height > target_height:
        return panorama[:target_height]
    return panorama


def should_crop(crop_flag: bool, auto_crop: bool, draw_labels: bool) -> bool:
    """Crop only for generations that need it, when enabled, and never over labels."""
    return crop_flag and auto_crop and not draw_labels
