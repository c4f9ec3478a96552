"""Data-parallel building blocks of the SfM pipeline, expressed as NumPy array operations.

Each function mirrors one compute kernel: it works on flat ``float32``/``uint32``
buffers laid out the same way (five floats per feature-grid cell, eight words per
descriptor, twelve floats per camera pose).  Functions that take a buffer they
are documented to update write into it in place, so that one buffer can collect
results for many images.
"""

from __future__ import annotations

from itertools import combinations
from typing import Any, NamedTuple

import numpy as np

_f32 = np.float32

FEATURE_STRIDE = 5
DESCRIPTOR_WORDS = 8
POSE_STRIDE = 12
MAX_HAMMING_DISTANCE = 256
MATCH_DISTANCE_THRESHOLD = 64
COORDINATE_LIMIT = 256
POSE_IMAGE_LIMIT = 100

_LOW_NIBBLE_POPCOUNT = np.array([bin(v).count("1") for v in range(16)], dtype=np.uint32)
_DESCRIPTOR_WORD_SET = 0xFFFF


class VisibilityPair(NamedTuple):
    """Two images that share enough feature-grid cells, and how many they share."""

    img1: int
    img2: int
    overlap: int


class Match(NamedTuple):
    """A feature-grid cell of one image matched to a cell of another image."""

    img1: int
    feature1: int
    img2: int
    feature2: int


def _writable_flat(buffer: Any, name: str, min_size: int) -> np.ndarray:
    if not isinstance(buffer, np.ndarray):
        raise TypeError(f"{name} must be a numpy array")
    if not buffer.flags.c_contiguous or not buffer.flags.writeable:
        raise ValueError(f"{name} must be a writable C-contiguous array")
    flat = buffer.reshape(-1)
    if flat.size < min_size:
        raise ValueError(f"{name} holds {flat.size} values, {min_size} are needed")
    return flat


def _readable_flat(buffer: Any, name: str, min_size: int, dtype: Any) -> np.ndarray:
    flat = np.asarray(buffer, dtype=dtype).reshape(-1)
    if flat.size < min_size:
        raise ValueError(f"{name} holds {flat.size} values, {min_size} are needed")
    return flat


def generate_test_image(width: int, height: int, pattern_id: int) -> np.ndarray:
    """Return a flat synthetic ``float32`` image of ``width * height`` pixels.

    Pattern 0 is a 32-pixel checkerboard, pattern 1 a two-level split at half
    width, and any other pattern a diagonal stripe texture.
    """
    ys, xs = np.divmod(np.arange(width * height, dtype=np.int64), max(width, 1))
    if pattern_id == 0:
        image = np.where((xs // 32 + ys // 32) % 2 == 0, 255, 0)
    elif pattern_id == 1:
        image = np.where(xs < width // 2, 100, 200)
    else:
        image = np.where((xs + ys) % 3 == 0, 150, 50)
    return image.astype(np.float32)


def _corner_response(image: np.ndarray, width: int, height: int) -> np.ndarray:
    a = image[: width * height].reshape(height, width)
    response = np.zeros((height, width), dtype=np.float32)
    if width > 2 and height > 2:
        gx = a[1:-1, 2:] - a[1:-1, :-2]
        gy = a[2:, 1:-1] - a[:-2, 1:-1]
        ixx = gx * gx
        iyy = gy * gy
        ixy = gx * gy
        response[1:-1, 1:-1] = ixx * iyy - ixy * ixy
    if width > 4 and height > 4:
        gx2 = a[2:-2, 4:] - a[2:-2, :-4]
        gy2 = a[4:, 2:-2] - a[:-4, 2:-2]
        response[2:-2, 2:-2] += (gx2 * gx2 * gy2 * gy2 - gx2 * gy2 * gx2 * gy2) / _f32(4)
    return response.reshape(-1)


def _encoded_image_index(image_idx: int) -> int:
    if image_idx < 10:
        return image_idx
    if image_idx < 50:
        return 10 + image_idx // 10
    return 50


def hierarchical_feature_extraction(
    image: Any,
    feature_grid: np.ndarray,
    grid_counts: np.ndarray,
    width: int,
    height: int,
    grid_size: int,
    image_idx: int,
) -> None:
    """Keep the strongest two-scale corner of each grid cell of one image.

    ``feature_grid`` holds ``(x, y, response, image code, score)`` per cell and
    is updated in place, as is the occupancy flag in ``grid_counts``.  Within a
    cell the first pixel (in row-major order) with the largest response wins,
    and only if that response beats the score already stored.
    """
    cells = grid_size * grid_size
    base = image_idx * cells
    pixels = _readable_flat(image, "image", width * height, np.float32)
    grid = _writable_flat(feature_grid, "feature_grid", (base + cells) * FEATURE_STRIDE)
    counts = _writable_flat(grid_counts, "grid_counts", base + cells)
    if width * height == 0:
        return

    response = _corner_response(pixels, width, height)
    pixel_index = np.arange(width * height, dtype=np.int64)
    ys, xs = np.divmod(pixel_index, width)
    cell_index = (ys * grid_size // height) * grid_size + xs * grid_size // width

    order = np.lexsort((pixel_index, -response, cell_index))
    sorted_cells = cell_index[order]
    first = np.ones(order.size, dtype=bool)
    first[1:] = sorted_cells[1:] != sorted_cells[:-1]

    code = _f32(_encoded_image_index(image_idx))
    for pixel in order[first]:
        cell = int(cell_index[pixel])
        offset = (base + cell) * FEATURE_STRIDE
        score = response[pixel]
        if not score > grid[offset + 4]:
            continue
        grid[offset + 0] = min(int(xs[pixel]), COORDINATE_LIMIT)
        grid[offset + 1] = min(int(ys[pixel]), COORDINATE_LIMIT)
        grid[offset + 2] = score
        grid[offset + 3] = code
        grid[offset + 4] = score
        counts[base + cell] = 1


def extract_compressed_descriptors(
    feature_grid: Any,
    descriptors: np.ndarray,
    width: int,
    height: int,
    grid_size: int,
    image_idx: int,
) -> None:
    """Write an eight-word binary descriptor for every scored cell of one image.

    A word gets its low sixteen bits set when the fixed sampling pattern around
    the feature lies inside the image, and is zero otherwise.  Cells without a
    positive score leave ``descriptors`` untouched.
    """
    cells = grid_size * grid_size
    base = image_idx * cells
    grid = _readable_flat(
        feature_grid, "feature_grid", (base + cells) * FEATURE_STRIDE, np.float32
    )
    out = _writable_flat(descriptors, "descriptors", (base + cells) * DESCRIPTOR_WORDS)

    block = grid[base * FEATURE_STRIDE : (base + cells) * FEATURE_STRIDE].reshape(
        cells, FEATURE_STRIDE
    )
    x, y, score = block[:, 0], block[:, 1], block[:, 4]
    w, h = _f32(width), _f32(height)
    zero = _f32(0)

    def inside(coord: np.ndarray, delta: int, limit: np.float32) -> np.ndarray:
        shifted = coord + _f32(delta)
        return (shifted >= zero) & (shifted < limit)

    in_bounds = inside(x, 7, w) & inside(y, 5, h) & inside(x, 3, w) & inside(y, 11, h)
    words = np.where(in_bounds, _DESCRIPTOR_WORD_SET, 0).astype(out.dtype)
    active = score > zero

    target = out[base * DESCRIPTOR_WORDS : (base + cells) * DESCRIPTOR_WORDS].reshape(
        cells, DESCRIPTOR_WORDS
    )
    target[active] = words[active][:, None]


def build_visibility_graph(
    feature_grid: Any, num_images: int, grid_size: int, overlap_threshold: int
) -> list[VisibilityPair]:
    """Return every image pair whose scored grid cells overlap at least ``overlap_threshold`` times.

    Pairs come in ``(0, 1), (0, 2), ..., (1, 2), ...`` order.
    """
    if num_images < 2:
        return []
    cells = grid_size * grid_size
    grid = _readable_flat(
        feature_grid, "feature_grid", num_images * cells * FEATURE_STRIDE, np.float32
    )
    scores = grid[: num_images * cells * FEATURE_STRIDE].reshape(
        num_images, cells, FEATURE_STRIDE
    )[:, :, 4]
    active = (scores > 0).astype(np.int64)
    overlap = active @ active.T
    return [
        VisibilityPair(i, j, int(overlap[i, j]))
        for i, j in combinations(range(num_images), 2)
        if overlap[i, j] >= overlap_threshold
    ]


def cascade_matching(descriptors: Any, img1: int, img2: int, grid_size: int) -> list[Match]:
    """Match each grid cell of ``img1`` to the closest cell in the 3x3 neighbourhood in ``img2``.

    Distance counts differing bits among the low four bits of each descriptor
    word; ties go to the first neighbour in row-major order.
    """
    cells = grid_size * grid_size
    needed = (max(img1, img2) + 1) * cells * DESCRIPTOR_WORDS
    flat = _readable_flat(descriptors, "descriptors", needed, np.uint32)
    table = flat[:needed].reshape(-1, grid_size, grid_size, DESCRIPTOR_WORDS)
    d1, d2 = table[img1], table[img2]

    best = np.full((grid_size, grid_size), MAX_HAMMING_DISTANCE, dtype=np.int64)
    best_idx = np.zeros((grid_size, grid_size), dtype=np.int64)
    rows = np.arange(grid_size)

    for oy in (-1, 0, 1):
        for ox in (-1, 0, 1):
            y0, y1 = max(0, -oy), min(grid_size, grid_size - oy)
            x0, x1 = max(0, -ox), min(grid_size, grid_size - ox)
            if y0 >= y1 or x0 >= x1:
                continue
            src = d1[y0:y1, x0:x1]
            dst = d2[y0 + oy : y1 + oy, x0 + ox : x1 + ox]
            distance = _LOW_NIBBLE_POPCOUNT[(src ^ dst) & 0xF].sum(axis=-1).astype(np.int64)
            region_best = best[y0:y1, x0:x1]
            better = distance < region_best
            region_best[better] = distance[better]
            candidates = (rows[y0:y1, None] + oy) * grid_size + (rows[None, x0:x1] + ox)
            best_idx[y0:y1, x0:x1][better] = candidates[better]

    flat_best = best.reshape(-1)
    flat_idx = best_idx.reshape(-1)
    return [
        Match(img1, cell, img2, int(flat_idx[cell]))
        for cell in range(cells)
        if flat_best[cell] < MATCH_DISTANCE_THRESHOLD
    ]


def incremental_sfm_poses(camera_poses: np.ndarray, chunk_id: int, chunk_size: int) -> None:
    """Fill in the coarse poses of one chunk of images in ``camera_poses``, in place.

    Each pose is a row-major rotation followed by a translation.  Chunk 0 also
    places the first camera at the origin; the first image of any other chunk
    and images from index 100 on are left untouched.
    """
    start = chunk_id * chunk_size
    end = start + chunk_size
    written = range(start + 1, min(end, POSE_IMAGE_LIMIT))
    highest = max(written[-1] if written else -1, 0 if chunk_id == 0 else -1)
    poses = _writable_flat(camera_poses, "camera_poses", (highest + 1) * POSE_STRIDE)

    identity = np.eye(3, dtype=poses.dtype).reshape(-1)
    if chunk_id == 0:
        poses[0:9] = identity
        poses[9:12] = 0

    for img_idx in written:
        offset = img_idx * POSE_STRIDE
        poses[offset : offset + 9] = identity
        if img_idx < 10:
            translation = (1, 0, 0)
        elif img_idx < 20:
            translation = (2, 0, 1)
        elif img_idx < 30:
            translation = (3, 0, 2)
        else:
            translation = (4, 0, 3)
        poses[offset + 9 : offset + 12] = translation


def reprojection_errors(
    points_3d: Any,
    camera_poses: Any,
    observations: Any,
    point_idx: int,
    num_cameras: int,
) -> np.ndarray:
    """Squared normalised-plane reprojection error of one point in every camera.

    Returns a ``float32`` array of length ``num_cameras``; cameras for which the
    point does not lie in front (depth not positive) get ``nan``.
    """
    points = _readable_flat(points_3d, "points_3d", (point_idx + 1) * 3, np.float32)
    poses = _readable_flat(camera_poses, "camera_poses", num_cameras * POSE_STRIDE, np.float32)
    obs = _readable_flat(
        observations, "observations", (point_idx + 1) * num_cameras * 2, np.float32
    )

    x, y, z = points[point_idx * 3 : point_idx * 3 + 3]
    p = poses[: num_cameras * POSE_STRIDE].reshape(num_cameras, POSE_STRIDE)
    xc = p[:, 0] * x + p[:, 1] * y + p[:, 2] * z + p[:, 9]
    yc = p[:, 3] * x + p[:, 4] * y + p[:, 5] * z + p[:, 10]
    zc = p[:, 6] * x + p[:, 7] * y + p[:, 8] * z + p[:, 11]

    start = point_idx * num_cameras * 2
    observed = obs[start : start + num_cameras * 2].reshape(num_cameras, 2)

    errors = np.full(num_cameras, np.nan, dtype=np.float32)
    front = zc > 0
    du = xc[front] / zc[front] - observed[front, 0]
    dv = yc[front] / zc[front] - observed[front, 1]
    errors[front] = du * du + dv * dv
    return errors