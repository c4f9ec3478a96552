import numpy as np
import pytest

from splatsfm.kernels import (
    Match,
    VisibilityPair,
    build_visibility_graph,
    cascade_matching,
    extract_compressed_descriptors,
    generate_test_image,
    hierarchical_feature_extraction,
    incremental_sfm_poses,
    reprojection_errors,
)


def _pixel(image, width, x, y):
    return image[y * width + x]


def _grid(num_images, grid_size, score):
    grid = np.zeros(num_images * grid_size * grid_size * 5, dtype=np.float32)
    grid[4::5] = score
    return grid


# --- generate_test_image -------------------------------------------------


def test_checkerboard_pattern():
    width, height = 96, 64
    image = generate_test_image(width, height, 0)
    assert image.shape == (width * height,)
    assert image.dtype == np.float32
    assert _pixel(image, width, 0, 0) == 255
    assert _pixel(image, width, 32, 0) == 0
    assert _pixel(image, width, 32, 32) == 255
    assert set(np.unique(image).tolist()) == {0.0, 255.0}


def test_split_pattern():
    width, height = 10, 4
    image = generate_test_image(width, height, 1)
    expected_row = [100.0] * 5 + [200.0] * 5
    assert image.tolist() == expected_row * height


def test_stripe_pattern():
    width = 7
    image = generate_test_image(width, 5, 2)
    assert _pixel(image, width, 0, 0) == 150
    assert _pixel(image, width, 1, 0) == 50
    assert _pixel(image, width, 2, 1) == 150
    assert set(np.unique(image).tolist()) == {50.0, 150.0}


# --- hierarchical_feature_extraction ------------------------------------


def test_flat_image_fills_every_cell_with_its_first_pixel():
    width, height, grid_size = 8, 8, 2
    grid = _grid(1, grid_size, -1.0)
    counts = np.zeros(grid_size * grid_size, dtype=np.uint32)
    image = np.full(width * height, 0.5, dtype=np.float32)

    hierarchical_feature_extraction(image, grid, counts, width, height, grid_size, 0)

    cells = grid.reshape(-1, 5)
    assert cells[0].tolist() == [0.0, 0.0, 0.0, 0.0, 0.0]
    assert cells[1][:2].tolist() == [4.0, 0.0]
    assert cells[2][:2].tolist() == [0.0, 4.0]
    assert cells[3][:2].tolist() == [4.0, 4.0]
    assert counts.tolist() == [1, 1, 1, 1]


def test_stored_positions_lie_in_their_cell():
    width, height, grid_size = 12, 9, 3
    grid = _grid(1, grid_size, -1.0)
    counts = np.zeros(grid_size * grid_size, dtype=np.uint32)
    image = generate_test_image(width, height, 2)

    hierarchical_feature_extraction(image, grid, counts, width, height, grid_size, 0)

    for cell, (x, y, response, _, score) in enumerate(grid.reshape(-1, 5)):
        assert int(y) * grid_size // height * grid_size + int(x) * grid_size // width == cell
        assert response == score


def test_coordinates_are_clamped():
    width, height, grid_size = 600, 2, 2
    grid = _grid(1, grid_size, -1.0)
    counts = np.zeros(grid_size * grid_size, dtype=np.uint32)
    image = np.zeros(width * height, dtype=np.float32)

    hierarchical_feature_extraction(image, grid, counts, width, height, grid_size, 0)

    assert grid.reshape(-1, 5)[1][0] == 256


@pytest.mark.parametrize("image_idx, code", [(3, 3), (25, 12), (60, 50)])
def test_image_index_code(image_idx, code):
    width, height, grid_size = 4, 4, 1
    grid = _grid(image_idx + 1, grid_size, -1.0)
    counts = np.zeros(image_idx + 1, dtype=np.uint32)
    image = np.zeros(width * height, dtype=np.float32)

    hierarchical_feature_extraction(image, grid, counts, width, height, grid_size, image_idx)

    assert grid.reshape(-1, 5)[image_idx][3] == code
    assert counts[image_idx] == 1
    assert counts[:image_idx].sum() == 0


def test_stronger_existing_score_is_kept():
    width, height, grid_size = 8, 8, 2
    grid = _grid(1, grid_size, 5.0)
    before = grid.copy()
    counts = np.zeros(grid_size * grid_size, dtype=np.uint32)
    image = generate_test_image(width, height, 1)

    hierarchical_feature_extraction(image, grid, counts, width, height, grid_size, 0)

    assert np.array_equal(grid, before)
    assert counts.sum() == 0


def test_feature_grid_too_small_is_rejected():
    grid = np.zeros(4, dtype=np.float32)
    counts = np.zeros(4, dtype=np.uint32)
    image = np.zeros(16, dtype=np.float32)
    with pytest.raises(ValueError):
        hierarchical_feature_extraction(image, grid, counts, 4, 4, 2, 0)


# --- extract_compressed_descriptors -------------------------------------


def test_descriptors_inside_and_outside_image():
    grid_size = 2
    grid = np.zeros(grid_size * grid_size * 5, dtype=np.float32).reshape(-1, 5)
    grid[0] = [10, 10, 1, 0, 1]
    grid[1] = [95, 95, 1, 0, 1]
    descriptors = np.full(grid_size * grid_size * 8, 7, dtype=np.uint32)

    extract_compressed_descriptors(grid.reshape(-1), descriptors, 100, 100, grid_size, 0)

    words = descriptors.reshape(-1, 8)
    assert words[0].tolist() == [0xFFFF] * 8
    assert words[1].tolist() == [0] * 8
    assert words[2].tolist() == [7] * 8
    assert words[3].tolist() == [7] * 8


def test_descriptors_written_at_image_offset():
    grid_size = 1
    grid = np.zeros(2 * 5, dtype=np.float32).reshape(-1, 5)
    grid[1] = [1, 1, 1, 1, 1]
    descriptors = np.zeros(2 * 8, dtype=np.uint32)

    extract_compressed_descriptors(grid.reshape(-1), descriptors, 50, 50, grid_size, 1)

    words = descriptors.reshape(-1, 8)
    assert words[0].sum() == 0
    assert np.all(words[1] == words[1][0]) and words[1][0] > 0


# --- build_visibility_graph ---------------------------------------------


def test_visibility_pairs_in_linear_order():
    grid_size = 2
    grid = _grid(3, grid_size, 1.0)
    pairs = build_visibility_graph(grid, 3, grid_size, 1)
    assert pairs == [
        VisibilityPair(0, 1, 4),
        VisibilityPair(0, 2, 4),
        VisibilityPair(1, 2, 4),
    ]


def test_visibility_threshold_and_partial_overlap():
    grid_size = 2
    grid = _grid(2, grid_size, 1.0).reshape(2, 4, 5)
    grid[1, 0, 4] = 0.0
    flat = grid.reshape(-1)
    assert build_visibility_graph(flat, 2, grid_size, 3) == [VisibilityPair(0, 1, 3)]
    assert build_visibility_graph(flat, 2, grid_size, 4) == []


def test_single_image_has_no_pairs():
    assert build_visibility_graph(_grid(1, 2, 1.0), 1, 2, 0) == []


# --- cascade_matching ----------------------------------------------------


def _distinct_descriptors(num_images, grid_size):
    descriptors = np.zeros((num_images, grid_size * grid_size, 8), dtype=np.uint32)
    descriptors[:, :, 0] = np.arange(grid_size * grid_size)
    return descriptors


def test_identical_images_match_cell_to_itself():
    grid_size = 3
    descriptors = _distinct_descriptors(2, grid_size)
    matches = cascade_matching(descriptors.reshape(-1), 0, 1, grid_size)
    assert matches == [Match(0, cell, 1, cell) for cell in range(grid_size * grid_size)]


def test_shifted_descriptors_match_neighbour():
    grid_size = 3
    descriptors = _distinct_descriptors(2, grid_size)
    shifted = descriptors[1].reshape(grid_size, grid_size, 8)
    descriptors[1] = np.roll(shifted, 1, axis=1).reshape(-1, 8)

    matches = cascade_matching(descriptors.reshape(-1), 0, 1, grid_size)

    by_cell = {m.feature1: m.feature2 for m in matches}
    assert by_cell[0] == 1
    assert by_cell[4] == 5


def test_matches_stay_in_neighbourhood():
    grid_size = 4
    rng = np.random.default_rng(7)
    descriptors = rng.integers(0, 2**32, size=2 * grid_size * grid_size * 8, dtype=np.uint32)
    matches = cascade_matching(descriptors, 0, 1, grid_size)
    assert len(matches) == grid_size * grid_size
    for match in matches:
        y1, x1 = divmod(match.feature1, grid_size)
        y2, x2 = divmod(match.feature2, grid_size)
        assert abs(y1 - y2) <= 1 and abs(x1 - x2) <= 1


# --- incremental_sfm_poses ----------------------------------------------


def test_first_chunk_poses():
    poses = np.full(100 * 12, -9.0, dtype=np.float32)
    incremental_sfm_poses(poses, 0, 20)
    table = poses.reshape(-1, 12)
    identity = np.eye(3).reshape(-1).tolist()
    assert table[0].tolist() == identity + [0.0, 0.0, 0.0]
    assert table[5].tolist() == identity + [1.0, 0.0, 0.0]
    assert table[15].tolist() == identity + [2.0, 0.0, 1.0]
    assert np.all(table[20:] == -9.0)


def test_later_chunks_skip_their_first_image():
    poses = np.zeros(100 * 12, dtype=np.float32)
    incremental_sfm_poses(poses, 1, 20)
    incremental_sfm_poses(poses, 4, 20)
    table = poses.reshape(-1, 12)
    assert np.all(table[20] == 0)
    assert table[21][9:].tolist() == [3.0, 0.0, 2.0]
    assert np.all(table[80] == 0)
    assert table[85][9:].tolist() == [4.0, 0.0, 3.0]
    assert np.all(table[0] == 0)


def test_images_past_limit_are_not_written():
    poses = np.full(120 * 12, -1.0, dtype=np.float32)
    incremental_sfm_poses(poses, 5, 20)
    assert poses.tolist() == [-1.0] * (120 * 12)


def test_pose_buffer_too_small_is_rejected():
    poses = np.zeros(10 * 12, dtype=np.float32)
    with pytest.raises(ValueError):
        incremental_sfm_poses(poses, 0, 20)


# --- reprojection_errors -------------------------------------------------


def _identity_pose(tz=0.0):
    return [1, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, tz]


def test_exact_observation_has_zero_error():
    points = [0.0, 0.0, 2.0]
    poses = _identity_pose()
    observations = [0.0, 0.0]
    errors = reprojection_errors(points, poses, observations, 0, 1)
    assert errors.tolist() == [0.0]


def test_error_is_squared_distance_and_behind_camera_is_nan():
    points = [2.0, 0.0, 2.0]
    poses = _identity_pose() + _identity_pose(tz=-5.0)
    observations = [0.0, 0.0, 1.0, 0.0]
    errors = reprojection_errors(points, poses, observations, 0, 2)
    assert errors[0] == pytest.approx(1.0)
    assert np.isnan(errors[1])


def test_second_point_uses_its_own_observations():
    points = [0.0, 0.0, 1.0, 1.0, 1.0, 1.0]
    poses = _identity_pose()
    observations = [5.0, 5.0, 1.0, 1.0]
    errors = reprojection_errors(points, poses, observations, 1, 1)
    assert errors.tolist() == [0.0]


def test_short_observation_buffer_is_rejected():
    with pytest.raises(ValueError):
        reprojection_errors([0.0, 0.0, 1.0], _identity_pose(), [0.0], 0, 1)