"""
Equirectangular to rectilinear reprojection.

Every panorama yields eight 512x512 perspective views with a 90° horizontal
field of view, one per compass direction. All eight directions share one
random rotation drawn per scene, and each view gets its own vertical FOV
jitter. Pitch and yaw tilt are fixed and identical for every view.

Dependencies:
- numpy for the per-pixel spherical mapping and bilinear sampling
- PIL/Pillow (through `save_view`) for JPEG encoding
"""
import os
import random
from dataclasses import dataclass
from typing import Optional

import numpy as np
from rich import print

from .constants import (
    GLOBAL_ROTATION_DEG,
    HFOV_DEG,
    PITCH_TILT_DEG,
    VFOV_DEG,
    VFOV_JITTER_DEG,
    VFOV_RANGE,
    VIEW_DIRECTIONS,
    VIEW_SIZE,
    YAW_TILT_DEG,
)
from .my_utils import save_view


@dataclass(frozen=True)
class ViewSpec:
    """Realized parameters of one directional view."""
    index: int
    label: str
    azimuth: float
    vfov: float
    hfov: float = HFOV_DEG


def plan_views(rng: Optional[random.Random] = None) -> list[ViewSpec]:
    """
    Draw the jitter for one scene and return the eight view specs.

    One global rotation in [-22.5°, 22.5°] is added to every base direction,
    so the views stay 45° apart. Each view's vertical FOV is 90° plus its
    own jitter in [-5°, 5°], clamped to [75°, 110°].
    """
    rng = rng or random.Random()
    rotation = rng.uniform(-GLOBAL_ROTATION_DEG, GLOBAL_ROTATION_DEG)
    low, high = VFOV_RANGE

    specs = []
    for index, (base, label) in enumerate(VIEW_DIRECTIONS, start=1):
        azimuth = (base + rotation + 360.0) % 360.0
        vfov = VFOV_DEG + rng.uniform(-VFOV_JITTER_DEG, VFOV_JITTER_DEG)
        specs.append(ViewSpec(index, label, azimuth, max(low, min(high, vfov))))
    return specs


def sample_coords(
    pano_w: int,
    pano_h: int,
    azimuth_deg: float,
    vfov_deg: float,
    size: int = VIEW_SIZE,
    hfov_deg: float = HFOV_DEG,
    pitch_deg: float = PITCH_TILT_DEG,
    yaw_deg: float = YAW_TILT_DEG
) -> tuple[np.ndarray, np.ndarray]:
    """
    Compute where each output pixel samples the panorama.

    Each pixel becomes a ray ``(nx, ny, 1)`` scaled by the half-FOV tangents,
    rotated by the pitch (around the horizontal axis) and then the yaw
    (around the vertical axis). The ray's elevation `phi` and azimuth
    `theta` map to ``u = (theta / 2π mod 1) * W`` and
    ``v = (0.5 - phi / π) * H``.

    Returns:
        tuple[np.ndarray, np.ndarray]: (map_x, map_y), each `size` x `size`.
    """
    pixels = np.arange(size, dtype=np.float64)
    xs, ys = np.meshgrid(pixels, pixels)

    nx = (2.0 * xs / size - 1.0) * np.tan(np.radians(hfov_deg) / 2)
    ny = -(2.0 * ys / size - 1.0) * np.tan(np.radians(vfov_deg) / 2)
    nz = np.ones_like(nx)

    pitch = np.radians(pitch_deg)
    py = ny * np.cos(pitch) - nz * np.sin(pitch)
    pz = ny * np.sin(pitch) + nz * np.cos(pitch)

    yaw = np.radians(yaw_deg)
    yx = nx * np.cos(yaw) + pz * np.sin(yaw)
    yz = -nx * np.sin(yaw) + pz * np.cos(yaw)

    r = np.sqrt(yx * yx + py * py + yz * yz)
    phi = np.arcsin(np.clip(py / r, -1.0, 1.0))
    theta = np.arctan2(yx, yz) + np.radians(azimuth_deg)

    map_x = np.mod(theta / (2.0 * np.pi), 1.0) * pano_w
    map_y = (0.5 - phi / np.pi) * pano_h
    return map_x, map_y


def bilinear_sample(image: np.ndarray, map_x: np.ndarray, map_y: np.ndarray) -> np.ndarray:
    """
    Sample `image` at fractional coordinates with bilinear interpolation.

    Columns wrap around (the panorama is periodic in azimuth); rows are
    clamped at the poles.
    """
    height, width = image.shape[:2]

    x0f = np.floor(map_x)
    y0f = np.floor(map_y)
    fx = map_x - x0f
    fy = map_y - y0f
    if image.ndim == 3:
        fx = fx[..., None]
        fy = fy[..., None]

    x0 = x0f.astype(np.int64) % width
    x1 = (x0 + 1) % width
    y0 = np.clip(y0f.astype(np.int64), 0, height - 1)
    y1 = np.clip(y0f.astype(np.int64) + 1, 0, height - 1)

    top = image[y0, x0].astype(np.float32) * (1 - fx) + image[y0, x1].astype(np.float32) * fx
    bottom = image[y1, x0].astype(np.float32) * (1 - fx) + image[y1, x1].astype(np.float32) * fx
    out = top * (1 - fy) + bottom * fy

    if np.issubdtype(image.dtype, np.integer):
        info = np.iinfo(image.dtype)
        return np.clip(np.rint(out), info.min, info.max).astype(image.dtype)
    return out.astype(image.dtype)


def equirect_to_rectilinear(
    panorama: np.ndarray,
    azimuth_deg: float,
    vfov_deg: float,
    size: int = VIEW_SIZE,
    hfov_deg: float = HFOV_DEG,
    pitch_deg: float = PITCH_TILT_DEG,
    yaw_deg: float = YAW_TILT_DEG
) -> np.ndarray:
    """Render one `size` x `size` perspective view of an equirectangular panorama."""
    pano_h, pano_w = panorama.shape[:2]
    map_x, map_y = sample_coords(pano_w, pano_h, azimuth_deg, vfov_deg, size, hfov_deg, pitch_deg, yaw_deg)
    return bilinear_sample(panorama, map_x, map_y)


def view_filename(scene_id: str, spec: ViewSpec) -> str:
    """`<scene_id>_View<index>_<label>_FOV<hfov>.jpg`, e.g. `abc_View1_N_FOV90.0.jpg`."""
    return f"{scene_id}_View{spec.index}_{spec.label}_FOV{spec.hfov:.1f}.jpg"


def expected_view_paths(scene_id: str, output_dir: str) -> list[str]:
    """Paths of the eight views of a scene; they do not depend on the jitter."""
    return [
        os.path.join(output_dir, view_filename(scene_id, ViewSpec(index, label, base, VFOV_DEG)))
        for index, (base, label) in enumerate(VIEW_DIRECTIONS, start=1)
    ]


def render_views(
    panorama: np.ndarray,
    scene_id: str,
    output_dir: str,
    specs: list[ViewSpec],
    size: int = VIEW_SIZE
) -> list[str]:
    """
    Render and save one view per spec.

    Args:
        panorama (np.ndarray): HxWx3 uint8 equirectangular panorama.
        scene_id (str): Panorama id, used in the file names.
        output_dir (str): Directory for the JPEG files.
        specs (list[ViewSpec]): Views to render, usually from `plan_views`.
        size (int): Output side length in pixels.

    Returns:
        list[str]: Paths of the saved views, in spec order.
    """
    paths = []
    for spec in specs:
        view = equirect_to_rectilinear(panorama, spec.azimuth, spec.vfov, size, spec.hfov)
        out_path = os.path.join(output_dir, view_filename(scene_id, spec))
        file_size = save_view(view, out_path)
        print(
            f"[cyan][VIEW] `{scene_id}` | View {spec.index} {spec.label} "
            f"| azimuth {spec.azimuth:.2f}° | FOV {spec.hfov:.1f}° x {spec.vfov:.2f}° | {file_size}[/]"
        )
        paths.append(out_path)
    return paths


def global_rotation(specs: list[ViewSpec]) -> float:
    """Shared rotation of a planned set of views, in degrees within [-180, 180)."""
    return (specs[0].azimuth - VIEW_DIRECTIONS[0][0] + 180.0) % 360.0 - 180.0


def reproject(
    panorama: np.ndarray,
    scene_id: str,
    output_dir: str,
    rng: Optional[random.Random] = None
) -> list[str]:
    """
    Plan the jitter for a scene and write its eight views in this process.

    `process_scene` does the same work split in two: it plans and logs the
    rotation on the event loop and renders inside its executor.
    """
    specs = plan_views(rng)
    print(f"[cyan][VIEW] `{scene_id}` | global rotation {global_rotation(specs):.2f}°[/]")
    return render_views(panorama, scene_id, output_dir, specs)
