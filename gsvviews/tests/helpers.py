"""Shared helpers for the gsvviews tests: in-memory images and a fake tile server."""
from io import BytesIO
from urllib.parse import parse_qs, urlparse

import numpy as np
from PIL import Image


def dummy_image_bytes(size=(64, 64), color=(255, 0, 0)):
    """
    Generate dummy image bytes for testing.

    Args:
        size (tuple[int, int]): Width and height of the image.
        color (tuple[int, int, int]): RGB color of the image.

    Returns:
        bytes: Image data in JPEG format.
    """
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG")
    buf.seek(0)
    return buf.read()


def dummy_tile(size=(64, 64), color=(255, 0, 0)):
    """Return an HxWx3 uint8 tile array."""
    return np.full((size[1], size[0], 3), color, dtype=np.uint8)


class MockResponse:
    def __init__(self, status=200, body=b""):
        self.status = status
        self.body = body

    async def read(self):
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


class FakeTileServer:
    """
    Stand-in for `ClientSession.get` that serves tiles from a set of valid coordinates.

    Requests for coordinates in `valid` get a grey JPEG tile; everything else
    gets a black tile. Every request is recorded as (scene_id, zoom, x, y).
    """

    def __init__(self, valid, tile_size=(64, 64), color=(120, 120, 120)):
        self.valid = set(valid)
        self.good = dummy_image_bytes(tile_size, color)
        self.black = dummy_image_bytes(tile_size, (0, 0, 0))
        self.requests = []

    def __call__(self, url, *args, **kwargs):
        query = parse_qs(urlparse(url).query)
        scene_id = query["panoid"][0]
        zoom, x, y = (int(query[key][0]) for key in ("zoom", "x", "y"))
        self.requests.append((scene_id, zoom, x, y))

        body = self.good if (zoom, x, y) in self.valid else self.black
        return MockResponse(200, body)

    def tile_requests(self, zoom):
        return [(x, y) for _, z, x, y in self.requests if z == zoom]
