"""
This module contains the unit tests for the `mapping` module from the `roimesh` package.
"""
import numpy as np
import pytest

from roimesh.exceptions import GeometryError, InvalidInput, UnsupportedMode
from roimesh.mapping import RoiMapConfig, add_roi, add_rois, blend_colors, dilate_selection, \
    nearest_vertices, refine_by_normals, threshold_vertices
from roimesh.roi import Roi
from roimesh.surf import CorticalMesh

RED = (1.0, 0.0, 0.0)


@pytest.fixture
def point_clouds():
    """
    Random mesh vertices and ROI coordinates with a fixed seed.
    """
    rng = np.random.default_rng(0)
    vertices = rng.uniform(-10, 10, size=(300, 3))
    coords = rng.uniform(-3, 3, size=(40, 3))
    return vertices, coords


def brute_force_sq_dists(vertices, coords):
    """
    Squared distance from every vertex to its closest ROI coordinate.
    """
    diff = vertices[:, np.newaxis, :] - coords[np.newaxis, :, :]
    return np.min(np.sum(diff ** 2, axis=2), axis=1)


def test_config_defaults_and_replace():
    """
    Tests documented defaults, copy-on-replace, and rejection of unknown options.
    """
    config = RoiMapConfig()
    assert config.dilate == 0
    assert config.alpha == 1.0
    assert config.dist_thresh is None
    assert config.use_normals
    assert not config.threshold_mode

    changed = config.replace(dist_thresh=2.5, dilate=1)
    assert changed.threshold_mode
    assert changed.dilate == 1
    assert config.dilate == 0
    assert changed != config
    assert config == RoiMapConfig()

    with pytest.raises(InvalidInput):
        config.replace(radius=3)


@pytest.mark.parametrize("kwargs", [
    {'dilate': -1},
    {'dilate': 1.5},
    {'dilate': True},
    {'alpha': 1.2},
    {'alpha': -0.1},
    {'alpha': float('nan')},
    {'dist_thresh': -2},
    {'dist_thresh': 'far'},
    {'use_normals': 'no'},
    {'use_normals': 1},
    {'normal_hit_sq_dist': -1},
])
def test_config_validation(kwargs):
    """
    Tests that out-of-range options are reported as invalid input.
    """
    with pytest.raises(InvalidInput):
        RoiMapConfig(**kwargs).validate()


def test_nearest_vertices_scenario(tetra_mesh):
    """
    Tests that a coordinate next to the origin selects vertex 0 only.
    """
    selection = nearest_vertices(tetra_mesh.vertices, np.array([[0.1, 0.0, 0.0]]))
    np.testing.assert_array_equal(selection, [0])


def test_nearest_vertices_properties(point_clouds):
    """
    Tests that the selection is no larger than the ROI and made of per-coordinate arg-mins.
    """
    vertices, coords = point_clouds
    selection = nearest_vertices(vertices, coords)

    assert selection.size <= coords.shape[0]
    diff = coords[:, np.newaxis, :] - vertices[np.newaxis, :, :]
    argmins = np.argmin(np.sum(diff ** 2, axis=2), axis=1)
    assert set(selection.tolist()) == set(argmins.tolist())


@pytest.mark.parametrize("dist_thresh, expected", [
    (1.5, [0, 1, 2, 3]),
    (1.0, [0, 1]),
    (0.5, [0]),
    (0.0, []),
])
def test_threshold_vertices_scenario(tetra_mesh, dist_thresh, expected):
    """
    Tests threshold selection on the four-vertex mesh: distances are 0.1, 0.9, and about 1.005
    for the two remaining vertices.
    """
    selection = threshold_vertices(tetra_mesh.vertices, np.array([[0.1, 0.0, 0.0]]), dist_thresh)
    np.testing.assert_array_equal(selection, expected)


def test_threshold_vertices_properties(point_clouds):
    """
    Tests that threshold selection matches brute force and grows with the threshold.
    """
    vertices, coords = point_clouds
    sq_dists = brute_force_sq_dists(vertices, coords)

    previous = set()
    for dist_thresh in [0.5, 1.0, 2.0, 4.0, 8.0]:
        selection = set(threshold_vertices(vertices, coords, dist_thresh).tolist())
        expected = set(np.where(sq_dists < dist_thresh ** 2)[0].tolist())
        assert selection == expected
        assert previous <= selection
        previous = selection


def test_refine_by_normals(two_sheet_mesh):
    """
    Tests that only vertices whose normal leads into the ROI survive: the lower sheet faces the
    ROI, the upper sheet faces away from it.
    """
    coords = np.array([[0.0, 0.0, 2.0]])
    candidates = threshold_vertices(two_sheet_mesh.vertices, coords, 3)
    refined = refine_by_normals(two_sheet_mesh.vertices, two_sheet_mesh.real_normals(), coords,
                                candidates, 3)

    assert set(refined.tolist()) <= set(candidates.tolist())
    upper = candidates[two_sheet_mesh.vertices[candidates, 2] > 2]
    assert upper.size > 0
    assert not set(upper.tolist()) & set(refined.tolist())

    # Stepping 2 mm up from the lower sheet lands within 1 mm of the ROI for the centre vertex
    # and its four edge neighbours.
    expected = {tuple(v) for v in [[0, 0, 0], [1, 0, 0], [-1, 0, 0], [0, 1, 0], [0, -1, 0]]}
    assert {tuple(two_sheet_mesh.vertices[i]) for i in refined} == expected


def test_refine_by_normals_edge_cases(two_sheet_mesh):
    """
    Tests empty candidates, thresholds below one step, and zero-length normals.
    """
    coords = np.array([[0.0, 0.0, 2.0]])
    vertices = two_sheet_mesh.vertices
    normals = two_sheet_mesh.real_normals()

    assert refine_by_normals(vertices, normals, coords, np.array([], dtype=int), 3).size == 0
    assert refine_by_normals(vertices, normals, coords, np.array([12]), 0.9).size == 0

    # Vertex 12 is the centre of the lower sheet, 2 mm below the ROI; without a direction it
    # never gets closer.
    zero_normals = np.zeros_like(normals)
    assert refine_by_normals(vertices, zero_normals, coords, np.array([12]), 3).size == 0
    assert refine_by_normals(vertices, zero_normals, np.array([[0.0, 0.0, 0.5]]),
                             np.array([12]), 3).size == 1

    # Normals are used for direction only
    np.testing.assert_array_equal(
        refine_by_normals(vertices, normals * 7.0, coords, np.array([12]), 3), [12]
    )


def test_dilate_selection():
    """
    Tests one-ring expansion through shared faces, and monotonicity over iterations.
    """
    faces = np.array([[0, 1, 2], [1, 2, 3], [3, 4, 5]])
    np.testing.assert_array_equal(dilate_selection(faces, [0], 0), [0])
    np.testing.assert_array_equal(dilate_selection(faces, [0], 1), [0, 1, 2])
    np.testing.assert_array_equal(dilate_selection(faces, [0], 2), [0, 1, 2, 3])
    np.testing.assert_array_equal(dilate_selection(faces, [0], 3), [0, 1, 2, 3, 4, 5])
    np.testing.assert_array_equal(dilate_selection(faces, [0], 10), [0, 1, 2, 3, 4, 5])

    previous = set()
    for n_iter in range(5):
        selection = set(dilate_selection(faces, [5], n_iter).tolist())
        assert previous <= selection
        previous = selection


def test_blend_colors():
    """
    Tests the alpha blend of a color into existing vertex colors.
    """
    vertex_colors = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0], [0.2, 0.4, 0.6]])
    blended = blend_colors(vertex_colors, np.array([0, 2]), [1.0, 0.0, 0.0], 0.25)
    np.testing.assert_array_almost_equal(blended, [[0.25, 0.0, 0.0], [0.4, 0.3, 0.45]])
    np.testing.assert_array_equal(vertex_colors[0], [0.0, 0.0, 0.0])


def test_add_roi_nearest(tetra_mesh):
    """
    Tests nearest-vertex mapping: registration, display order, and coloring.
    """
    mesh = add_roi(tetra_mesh, Roi([[0.1, 0.0, 0.0]], '3_ROI.nii.gz'), RED)

    assert mesh is tetra_mesh
    assert mesh.roi == {'x3_ROI': {0}}
    assert mesh.roi_show == ['x3_ROI']
    np.testing.assert_array_equal(mesh.vertex_colors[0], RED)
    np.testing.assert_array_equal(mesh.vertex_colors[1:], np.full((3, 3), 0.5))


def test_add_roi_threshold_without_normals(tetra_mesh):
    """
    Tests threshold mapping with Euclidean distance only.
    """
    add_roi(tetra_mesh, ([[0.1, 0.0, 0.0]], 'near'), RED, dist_thresh=1.0, use_normals=False)
    assert tetra_mesh.roi['near'] == {0, 1}


def test_add_roi_threshold_with_normals(two_sheet_mesh):
    """
    Tests that normal-directed search is a subset of the Euclidean selection and rejects the
    sheet facing away from the ROI.
    """
    roi = ([[0.0, 0.0, 2.0]], 'between sheets')
    config = RoiMapConfig(dist_thresh=3)

    add_roi(two_sheet_mesh, roi, RED, config=config, use_normals=False)
    euclidean = two_sheet_mesh.roi['between_sheets']
    add_roi(two_sheet_mesh, roi, RED, config=config)
    refined = two_sheet_mesh.roi['between_sheets']

    assert refined < euclidean
    assert all(two_sheet_mesh.vertices[i, 2] == 0 for i in refined)
    assert two_sheet_mesh.roi_show == ['between_sheets']


def test_add_roi_dilate():
    """
    Tests that one dilation step from vertex 0 reaches every vertex of the face it belongs to.
    """
    vertices = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 1]], dtype=float)
    mesh = CorticalMesh(vertices, [[0, 1, 2], [1, 2, 3]])

    add_roi(mesh, ([[0.1, 0.0, 0.0]], 'undilated'), RED)
    add_roi(mesh, ([[0.1, 0.0, 0.0]], 'dilated'), RED, dilate=1)

    assert mesh.roi['undilated'] == {0}
    assert mesh.roi['dilated'] == {0, 1, 2}
    assert mesh.roi_show == ['undilated', 'dilated']


def test_add_roi_alpha(tetra_mesh):
    """
    Tests that alpha=0 leaves colors unchanged, alpha=1 is idempotent, and partial alpha blends.
    """
    roi = ([[0.0, 0.0, 0.0]], 'origin')
    before = tetra_mesh.vertex_colors.copy()

    add_roi(tetra_mesh, roi, RED, alpha=0.0)
    np.testing.assert_array_equal(tetra_mesh.vertex_colors, before)
    assert tetra_mesh.roi['origin'] == {0}

    add_roi(tetra_mesh, roi, (0.0, 0.0, 1.0), alpha=0.5)
    np.testing.assert_array_almost_equal(tetra_mesh.vertex_colors[0], [0.25, 0.25, 0.75])

    add_roi(tetra_mesh, roi, RED, alpha=1.0)
    once = tetra_mesh.vertex_colors.copy()
    add_roi(tetra_mesh, roi, RED, alpha=1.0)
    np.testing.assert_array_equal(tetra_mesh.vertex_colors, once)


def test_add_roi_same_name_twice(tetra_mesh):
    """
    Tests that re-mapping under an existing name overwrites the membership and keeps a single
    display entry.
    """
    add_roi(tetra_mesh, ([[0.0, 0.0, 0.0]], 'arc'), RED)
    add_roi(tetra_mesh, ([[0.0, 0.0, 0.0]], 'ilf'), RED)
    add_roi(tetra_mesh, ([[1.0, 0.0, 0.0]], 'arc'), RED)

    assert tetra_mesh.roi['arc'] == {1}
    assert tetra_mesh.roi_show == ['arc', 'ilf']


def test_add_roi_reindexed_mesh(tetra_mesh):
    """
    Tests that on a re-indexed current set the membership keeps origin indices while colors are
    applied at current positions.
    """
    mesh = tetra_mesh.remove_vertices([1])

    add_roi(mesh, ([[0.0, 1.0, 0.0]], 'y_axis'), RED)
    assert mesh.roi['y_axis'] == {2}
    np.testing.assert_array_equal(mesh.vertex_colors[1], RED)
    np.testing.assert_array_equal(mesh.vertex_colors[[0, 2]], np.full((2, 3), 0.5))

    # The ROI's vertex is not displayed: registered, but nothing is colored
    before = mesh.vertex_colors.copy()
    add_roi(mesh, ([[1.0, 0.0, 0.0]], 'x_axis'), RED)
    assert mesh.roi['x_axis'] == {1}
    np.testing.assert_array_equal(mesh.vertex_colors, before)
    assert mesh.roi_vertices('x_axis').size == 0


@pytest.mark.parametrize("roi, color, kwargs", [
    (([[0.0, 0.0, 0.0]], 'a'), (1.2, 0.0, 0.0), {}),
    (([[0.0, 0.0, 0.0]], 'a'), (-0.1, 0.0, 0.0), {}),
    (([[0.0, 0.0, 0.0]], 'a'), (1.0, 0.0), {}),
    (([[0.0, 0.0, 0.0]], 'a'), 'red', {}),
    ((np.zeros((0, 3)), 'a'), RED, {}),
    (([[np.nan, 0.0, 0.0]], 'a'), RED, {}),
    (([[0.0, np.inf, 0.0]], 'a'), RED, {'dist_thresh': 2, 'use_normals': False}),
    (([[0.0, 0.0, 0.0]], 'a'), RED, {'dilate': -1}),
    (([[0.0, 0.0, 0.0]], 'a'), RED, {'alpha': 2}),
])
def test_add_roi_invalid_input(tetra_mesh, roi, color, kwargs):
    """
    Tests that malformed arguments raise `InvalidInput` and leave the mesh untouched.
    """
    before = tetra_mesh.vertex_colors.copy()
    with pytest.raises(InvalidInput):
        add_roi(tetra_mesh, roi, color, **kwargs)
    np.testing.assert_array_equal(tetra_mesh.vertex_colors, before)
    assert tetra_mesh.roi == {}
    assert tetra_mesh.roi_show == []


def test_add_roi_empty_mesh():
    """
    Tests that a mesh without vertices is rejected.
    """
    mesh = CorticalMesh(np.zeros((0, 3)), np.zeros((0, 3), dtype=int))
    with pytest.raises(InvalidInput):
        add_roi(mesh, ([[0.0, 0.0, 0.0]], 'a'), RED)


def test_add_roi_unsupported_mode(tetra_mesh):
    """
    Tests that normal-directed search on a mesh without normals is reported and leaves the mesh
    untouched.
    """
    before = tetra_mesh.vertex_colors.copy()
    with pytest.raises(UnsupportedMode):
        add_roi(tetra_mesh, ([[0.1, 0.0, 0.0]], 'a'), RED, dist_thresh=2)
    np.testing.assert_array_equal(tetra_mesh.vertex_colors, before)
    assert tetra_mesh.roi == {}


def test_add_roi_geometry_error(tetra_mesh):
    """
    Tests that topology corrupted after construction is caught before any mutation.
    """
    tetra_mesh.faces = np.array([[0, 1, 9]])
    with pytest.raises(GeometryError):
        add_roi(tetra_mesh, ([[0.1, 0.0, 0.0]], 'a'), RED)
    assert tetra_mesh.roi == {}


def test_add_rois(tetra_mesh):
    """
    Tests mapping several ROIs in order, with one shared color and with per-ROI colors.
    """
    rois = [([[0.0, 0.0, 0.0]], 'first'), ([[0.0, 0.0, 1.0]], 'second')]
    add_rois(tetra_mesh, rois, [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])

    assert tetra_mesh.roi_show == ['first', 'second']
    np.testing.assert_array_equal(tetra_mesh.vertex_colors[0], [1.0, 0.0, 0.0])
    np.testing.assert_array_equal(tetra_mesh.vertex_colors[3], [0.0, 1.0, 0.0])

    add_rois(tetra_mesh, rois, (0.0, 0.0, 1.0), dilate=1)
    assert tetra_mesh.roi['first'] == {0, 1, 2, 3}

    with pytest.raises(InvalidInput):
        add_rois(tetra_mesh, rois, [[1.0, 0.0, 0.0]] * 3)


def test_add_rois_missing_file(tmp_path, tetra_mesh):
    """
    Tests that a missing mask is reported before any ROI is mapped.
    """
    rois = [([[0.0, 0.0, 0.0]], 'first'), tmp_path / 'missing.nii.gz']
    with pytest.raises(FileNotFoundError):
        add_rois(tetra_mesh, rois, RED)
    assert tetra_mesh.roi == {}


@pytest.mark.parametrize("rois, colors", [
    ([([[0.0, 0.0, 0.0]], 'first'), (np.zeros((0, 3)), 'empty')], RED),
    ([([[0.0, 0.0, 0.0]], 'first'), ([[0.0, 0.0, 1.0]], 'second')], [RED, (0.0, 2.0, 0.0)]),
    ([([[0.0, 0.0, 0.0]], 'first'), ([[0.0, 0.0, np.nan]], 'second')], RED),
])
def test_add_rois_all_or_nothing(tetra_mesh, rois, colors):
    """
    Tests that a failing ROI later in the batch leaves earlier ROIs unregistered and unpainted.
    """
    before = tetra_mesh.vertex_colors.copy()
    with pytest.raises(InvalidInput):
        add_rois(tetra_mesh, rois, colors)
    np.testing.assert_array_equal(tetra_mesh.vertex_colors, before)
    assert tetra_mesh.roi == {}
    assert tetra_mesh.roi_show == []


def test_add_rois_blends_in_order(tetra_mesh):
    """
    Tests that ROIs sharing a vertex blend over the colors left by the earlier ROIs.
    """
    rois = [([[0.0, 0.0, 0.0]], 'first'), ([[0.1, 0.0, 0.0]], 'second')]
    add_rois(tetra_mesh, rois, [[1.0, 1.0, 1.0], [0.0, 0.0, 0.0]], alpha=0.5)

    # 0.5 grey -> 0.75 after the first ROI -> 0.375 after the second
    np.testing.assert_array_almost_equal(tetra_mesh.vertex_colors[0], [0.375] * 3)
    np.testing.assert_array_equal(tetra_mesh.vertex_colors[1:], np.full((3, 3), 0.5))
    assert tetra_mesh.roi == {'first': {0}, 'second': {0}}
