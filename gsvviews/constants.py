TILE_ENDPOINT = "https://streetviewpixels-pa.googleapis.com/v1/tile"
CLIENT_ID = "apiv3"

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Referer": "https://www.google.com/maps/",
    "Accept": "image/webp,image/apng,image/*,*/*;q=0.8",
}

# generation -> (zoom, x_tiles, y_tiles, crop)
GENERATIONS = {
    1: (3, 8, 4, True),
    2: (4, 13, 6, True),
    3: (4, 13, 7, True),
    4: (4, 16, 8, False),
}
DEFAULT_GENERATION = 4

GENERATION_DESCRIPTIONS = {
    1: "Generation 1 (Zoom 3, 8x4)",
    2: "Generation 2 (Zoom 4, 13x6)",
    3: "Generation 3 (Zoom 4, 13x7)",
    4: "Generation 4 (Zoom 4, 16x8)",
}
UNKNOWN_GENERATION = (0, "Unknown Generation")

# Probe order runs finest grid first. Each pair of coordinates only exists
# on that generation's grid (or a finer one).
GENERATION_PROBES = [
    (4, 4, [(15, 7), (14, 6)]),
    (3, 4, [(12, 6), (11, 5)]),
    (2, 4, [(12, 5), (10, 4)]),
    (1, 3, [(7, 3), (6, 2)]),
]

# (generation, zoom, x, y) central tiles tried when no pattern matches
FALLBACK_PROBES = [
    (4, 4, 8, 4),
    (1, 3, 4, 2),
]

# mean grayscale level a tile must exceed; JPEG noise keeps black tiles just above 0
BLACK_TILE_MEAN = 0.1
MIN_TILE_SIDE = 10

MAX_BACKOFF = 10.0

SENTINEL_COLOR = (255, 0, 255)

GEN1_CROP_SIZE = (3328, 1664)

VIEW_SIZE = 512
HFOV_DEG = 90.0
VFOV_DEG = 90.0
VFOV_JITTER_DEG = 5.0
VFOV_RANGE = (75.0, 110.0)
GLOBAL_ROTATION_DEG = 22.5
PITCH_TILT_DEG = 5.0
YAW_TILT_DEG = 5.0

VIEW_DIRECTIONS = [
    (0.0, "N"),
    (45.0, "NE"),
    (90.0, "E"),
    (135.0, "SE"),
    (180.0, "S"),
    (225.0, "SW"),
    (270.0, "W"),
    (315.0, "NW"),
]

SCENE_ID_LENGTH = 22

PANOID_HEADERS = ("panoid", "pano_id", "panorama_id", "panoramaid", "pano id", "id")
