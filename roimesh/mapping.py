"""
Projection of regions of interest onto cortical surface meshes.

An ROI point set is mapped onto a `CorticalMesh` by selecting mesh vertices, optionally expanding
the selection over the face adjacency graph, and blending a color into the selected vertices.
The selected origin vertex indices are registered on the mesh under the ROI's sanitized name.

Two selection modes are available:

- **Nearest-vertex** (default): every ROI coordinate selects its closest mesh vertex.
- **Distance threshold**: every mesh vertex closer than `dist_thresh` mm to the ROI is
  selected. With `use_normals`, a candidate vertex is only kept if stepping outward along its
  normal, one millimetre at a time, brings it within 1 mm of an ROI coordinate. This discards
  vertices that are close in Euclidean space but lie across a sulcus from the ROI.

Functions
---------
add_roi(mesh, roi, color, config=None, **overrides)
    Map one ROI onto a mesh.
add_rois(mesh, rois, colors, config=None, n_jobs=1, **overrides)
    Resolve and map several ROIs in order.
nearest_vertices, threshold_vertices, refine_by_normals, dilate_selection, blend_colors
    Individual stages of the mapping.
"""

import copy
import logging
import numbers

import numpy as np
from scipy.spatial import cKDTree  # pylint: disable=E0611

from roimesh.exceptions import GeometryError, InvalidInput, UnsupportedMode
from roimesh.roi import load_rois, resolve_roi
from roimesh.surf import _normit, current_positions

logger = logging.getLogger(__name__)


class RoiMapConfig:
    """
    Options controlling how an ROI is mapped onto a mesh.

    Parameters
    ----------
    dilate : int, optional
        Number of one-ring expansions applied to the selection. Default is 0.
    alpha : float, optional
        Weight of the ROI color against the existing vertex color, in [0, 1]. Default is 1.
    dist_thresh : float or None, optional
        Distance threshold in mm. None selects nearest-vertex mode. Default is None.
    use_normals : bool, optional
        Refine the threshold selection by searching along vertex normals. Ignored in
        nearest-vertex mode. Default is True.
    normal_hit_sq_dist : float, optional
        Squared distance (mm^2) within which a point stepped along a normal counts as reaching
        the ROI. Default is 1.
    """

    def __init__(self, dilate=0, alpha=1.0, dist_thresh=None, use_normals=True,
                 normal_hit_sq_dist=1.0):
        self.dilate = dilate
        self.alpha = alpha
        self.dist_thresh = dist_thresh
        self.use_normals = use_normals
        self.normal_hit_sq_dist = normal_hit_sq_dist

    def __repr__(self):
        return f"RoiMapConfig(dilate={self.dilate!r}, alpha={self.alpha!r}, " \
               f"dist_thresh={self.dist_thresh!r}, use_normals={self.use_normals!r}, " \
               f"normal_hit_sq_dist={self.normal_hit_sq_dist!r})"

    def __eq__(self, other):
        if not isinstance(other, RoiMapConfig):
            return NotImplemented
        return vars(self) == vars(other)

    @property
    def threshold_mode(self):
        """True when vertices are selected by distance threshold."""
        return self.dist_thresh is not None

    def replace(self, **kwargs):
        """
        Return a copy with some options changed.

        Raises
        ------
        InvalidInput
            If an unknown option is given.
        """
        new_config = copy.copy(self)
        for key, value in kwargs.items():
            if key not in vars(self):
                raise InvalidInput(f"Unknown ROI mapping option: {key}")
            setattr(new_config, key, value)
        return new_config

    def validate(self):
        """
        Check option types and ranges.

        Raises
        ------
        InvalidInput
            If an option has the wrong type or is out of range.
        """
        if isinstance(self.dilate, bool) or not isinstance(self.dilate, numbers.Integral) \
                or self.dilate < 0:
            raise InvalidInput(f"dilate must be a non-negative integer, got {self.dilate!r}")
        if not _is_real(self.alpha) or not 0 <= self.alpha <= 1:
            raise InvalidInput(f"alpha must be in [0, 1], got {self.alpha!r}")
        if self.dist_thresh is not None and \
                (not _is_real(self.dist_thresh) or self.dist_thresh < 0):
            raise InvalidInput(
                f"dist_thresh must be None or a non-negative number, got {self.dist_thresh!r}"
            )
        if not isinstance(self.use_normals, (bool, np.bool_)):
            raise InvalidInput(f"use_normals must be a boolean, got {self.use_normals!r}")
        if not _is_real(self.normal_hit_sq_dist) or self.normal_hit_sq_dist < 0:
            raise InvalidInput("normal_hit_sq_dist must be a non-negative number")
        return self


def nearest_vertices(vertices, coords):
    """
    Select, for every ROI coordinate, the closest mesh vertex.

    Parameters
    ----------
    vertices : np.ndarray, shape (N, 3)
        Mesh vertices.
    coords : np.ndarray, shape (K, 3)
        ROI coordinates.

    Returns
    -------
    np.ndarray of int
        Sorted unique vertex indices; at most K of them.
    """
    tree = cKDTree(vertices)
    _, indices = tree.query(coords, k=1)
    return np.unique(indices)


def threshold_vertices(vertices, coords, dist_thresh):
    """
    Select mesh vertices whose squared distance to the nearest ROI coordinate is below
    `dist_thresh ** 2`.

    Parameters
    ----------
    vertices : np.ndarray, shape (N, 3)
        Mesh vertices.
    coords : np.ndarray, shape (K, 3)
        ROI coordinates.
    dist_thresh : float
        Distance threshold in mm.

    Returns
    -------
    np.ndarray of int
        Sorted vertex indices.
    """
    tree = cKDTree(coords)
    dists, _ = tree.query(vertices, k=1)
    return np.where(dists ** 2 < dist_thresh ** 2)[0]


def refine_by_normals(vertices, normals, coords, candidates, dist_thresh, hit_sq_dist=1.0):
    """
    Keep the candidate vertices whose outward normal reaches the ROI.

    Each candidate is stepped along its unit normal by 1, 2, ..., `floor(dist_thresh)` mm. The
    candidate is kept if any stepped point lies within `hit_sq_dist` (squared) of an ROI
    coordinate. Zero-length normals do not move the vertex, so such a vertex is kept only if it
    already lies within reach of the ROI.

    Parameters
    ----------
    vertices : np.ndarray, shape (N, 3)
        Mesh vertices.
    normals : np.ndarray, shape (N, 3)
        Vertex normals; the real component is used for direction only.
    coords : np.ndarray, shape (K, 3)
        ROI coordinates.
    candidates : np.ndarray of int
        Vertex indices selected by `threshold_vertices`.
    dist_thresh : float
        Distance threshold in mm; sets the number of steps.
    hit_sq_dist : float, optional
        Squared distance counted as a hit. Default is 1.

    Returns
    -------
    np.ndarray of int
        Subset of `candidates`, in the same order.
    """
    candidates = np.asarray(candidates, dtype=int)
    n_steps = int(np.floor(dist_thresh))
    if candidates.size == 0 or n_steps < 1:
        return candidates[:0]

    directions = _normit(np.real(normals[candidates]).astype(float))
    n_degenerate = np.count_nonzero(~np.any(directions, axis=1))
    if n_degenerate:
        logger.debug("%d candidate vertices have zero-length normals", n_degenerate)

    steps = np.arange(1, n_steps + 1, dtype=float)
    # (steps, candidates, xyz)
    stepped = vertices[candidates][np.newaxis, :, :] + \
        steps[:, np.newaxis, np.newaxis] * directions[np.newaxis, :, :]

    tree = cKDTree(coords)
    dists, _ = tree.query(stepped.reshape(-1, 3), k=1)
    sq_dists = (dists ** 2).reshape(n_steps, candidates.size)
    return candidates[np.any(sq_dists <= hit_sq_dist, axis=0)]


def dilate_selection(faces, selection, n_iter):
    """
    Grow a vertex selection over the face adjacency graph.

    At every iteration, all vertices of every face that touches the selection are added.

    Parameters
    ----------
    faces : np.ndarray, shape (F, 3)
        Triangular faces.
    selection : array_like of int
        Initial vertex indices.
    n_iter : int
        Number of expansions.

    Returns
    -------
    np.ndarray of int
        Sorted unique vertex indices, a superset of `selection`.
    """
    selection = np.unique(np.asarray(selection, dtype=int))
    for _ in range(n_iter):
        touching = np.any(np.isin(faces, selection), axis=1)
        expanded = np.union1d(selection, faces[touching].ravel())
        if expanded.size == selection.size:
            break
        selection = expanded
    return selection


def blend_colors(vertex_colors, positions, color, alpha):
    """
    Compute `alpha * color + (1 - alpha) * old` for the given vertex positions.

    Parameters
    ----------
    vertex_colors : np.ndarray, shape (M, 3)
        Current vertex colors. Not modified.
    positions : np.ndarray of int
        Rows to blend.
    color : array_like, shape (3,)
        RGB color in [0, 1].
    alpha : float
        Blend weight of `color`.

    Returns
    -------
    np.ndarray, shape (len(positions), 3)
        Blended colors for `positions`.
    """
    color = np.asarray(color, dtype=float)
    return alpha * color[np.newaxis, :] + (1 - alpha) * vertex_colors[positions]


def add_roi(mesh, roi, color, config=None, **overrides):
    """
    Map a region of interest onto a mesh, color it, and register it.

    Parameters
    ----------
    mesh : roimesh.surf.CorticalMesh
        Target mesh; modified in place.
    roi : Roi or tuple or str or os.PathLike
        ROI coordinates and name, or path to a binary NIfTI mask coregistered to the mesh.
    color : array_like, shape (3,)
        RGB color, each channel in [0, 1].
    config : RoiMapConfig, optional
        Mapping options. Defaults to `RoiMapConfig()`.
    **overrides
        Options replacing those of `config` (e.g. `dilate=2`, `dist_thresh=3`).

    Returns
    -------
    roimesh.surf.CorticalMesh
        The same mesh, with `vertex_colors` updated, `mesh.roi[name]` set to the selected origin
        vertex indices and `name` present once in `mesh.roi_show`.

    Raises
    ------
    InvalidInput
        If the mesh or the ROI has no points, a coordinate is not finite, or an option or the
        color is out of range.
    GeometryError
        If the mesh topology references vertices that do not exist.
    UnsupportedMode
        If normal-directed search is requested on a mesh without normals.

    Notes
    -----
    Re-mapping an ROI under an existing name replaces its vertex set; its display entry is kept
    in place. Nothing is modified on the mesh if an error is raised.

    Examples
    --------
    >>> mesh = add_roi(mesh, 'rois/left arcuate-seg.nii.gz', [0, 0.5, 1], dilate=1)
    >>> sorted(mesh.roi['left_arcuate_seg'])[:3]
    [1021, 1022, 1040]
    """
    config = (config or RoiMapConfig()).replace(**overrides).validate()
    name, selection, positions, blended = _stage_roi(mesh, roi, color, config,
                                                     mesh.vertex_colors)

    mesh.vertex_colors[positions] = blended
    _register_roi(mesh, name, selection, config)
    return mesh


def add_rois(mesh, rois, colors, config=None, n_jobs=1, **overrides):
    """
    Map several ROIs onto a mesh, in order.

    All ROIs are resolved (NIfTI masks read, names sanitized) and mapped against a staged copy
    of the vertex colors. The mesh is only updated once every ROI has been mapped, so an error on
    any ROI leaves the mesh untouched.

    Parameters
    ----------
    mesh : roimesh.surf.CorticalMesh
        Target mesh; modified in place.
    rois : iterable
        ROI descriptions accepted by `add_roi`.
    colors : array_like, shape (3,) or (len(rois), 3)
        One color for all ROIs or one color per ROI.
    config : RoiMapConfig, optional
        Mapping options shared by all ROIs.
    n_jobs : int, optional
        Number of parallel workers for reading masks. Default is 1.
    **overrides
        Options replacing those of `config`.

    Returns
    -------
    roimesh.surf.CorticalMesh
        The mesh with every ROI registered.

    Raises
    ------
    InvalidInput
        If the number of colors does not match the number of ROIs, or any ROI fails as in
        `add_roi`.
    """
    config = (config or RoiMapConfig()).replace(**overrides).validate()
    rois = load_rois(rois, n_jobs=n_jobs)
    try:
        colors = np.asarray(colors, dtype=float)
    except (TypeError, ValueError) as err:
        raise InvalidInput("Colors must be an RGB triple or one RGB triple per ROI") from err
    if colors.ndim == 1:
        colors = np.tile(colors, (len(rois), 1))
    if colors.shape[0] != len(rois):
        raise InvalidInput(f"Got {colors.shape[0]} colors for {len(rois)} ROIs")

    staged_colors = mesh.vertex_colors.copy()
    staged = []
    for roi, color in zip(rois, colors):
        name, selection, positions, blended = _stage_roi(mesh, roi, color, config,
                                                         staged_colors)
        staged_colors[positions] = blended
        staged.append((name, selection))

    mesh.vertex_colors[:] = staged_colors
    for name, selection in staged:
        _register_roi(mesh, name, selection, config)
    return mesh


def _stage_roi(mesh, roi, color, config, vertex_colors):
    """
    Compute the selection and blended colors of one ROI without touching the mesh.

    Returns the sanitized name, the selected origin indices, their current-set positions and
    the blended colors for those positions, computed against `vertex_colors`.
    """
    color = _check_color(color)
    roi = resolve_roi(roi)

    if mesh.vertices.shape[0] == 0:
        raise InvalidInput("Mesh has no vertices")
    if len(roi) == 0:
        raise InvalidInput(f"ROI {roi.name!r} has no coordinates")
    _check_topology(mesh)

    selection = _select_vertices(mesh, roi.coords, config)
    if config.dilate > 0:
        n_before = selection.size
        selection = dilate_selection(mesh.faces, selection, config.dilate)
        logger.debug("Dilation x%d: %d -> %d vertices", config.dilate, n_before, selection.size)

    positions = current_positions(mesh.map2origin, selection)
    blended = blend_colors(vertex_colors, positions, color, config.alpha)
    return roi.name, selection, positions, blended


def _register_roi(mesh, name, selection, config):
    mesh.roi[name] = set(selection.tolist())
    if name not in mesh.roi_show:
        mesh.roi_show.append(name)
    logger.info("Mapped ROI %s (%s mode) to %d vertices", name,
                'threshold' if config.threshold_mode else 'nearest', selection.size)


def _select_vertices(mesh, coords, config):
    if not config.threshold_mode:
        return nearest_vertices(mesh.vertices, coords)

    if config.use_normals and mesh.normals is None:
        raise UnsupportedMode("Normal-directed search requested but the mesh has no normals")

    selection = threshold_vertices(mesh.vertices, coords, config.dist_thresh)
    logger.debug("%d vertices within %s mm", selection.size, config.dist_thresh)
    if config.use_normals:
        selection = refine_by_normals(
            mesh.vertices, mesh.real_normals(), coords, selection, config.dist_thresh,
            hit_sq_dist=config.normal_hit_sq_dist
        )
        logger.debug("%d vertices reach the ROI along their normal", selection.size)
    return selection


def _check_color(color):
    try:
        color = np.asarray(color, dtype=float).reshape(-1)
    except (TypeError, ValueError) as err:
        raise InvalidInput(f"Color must be an RGB triple, got {color!r}") from err
    if color.shape != (3,):
        raise InvalidInput(f"Color must be an RGB triple, got {color.shape[0]} values")
    if not np.all((color >= 0) & (color <= 1)):
        raise InvalidInput(f"Color channels must be in [0, 1], got {color.tolist()}")
    return color


def _check_topology(mesh):
    n_vertices = mesh.vertices.shape[0]
    faces = mesh.faces
    if faces.size and (faces.min() < 0 or faces.max() >= n_vertices):
        raise GeometryError("Mesh faces reference vertices that do not exist")
    if mesh.map2origin is not None and mesh.map2origin.size and \
            (mesh.map2origin.min() < 0 or mesh.map2origin.max() >= n_vertices):
        raise GeometryError("Vertex map references origin vertices that do not exist")
    if mesh.vertex_colors.shape[0] != mesh.n_current:
        raise GeometryError("Vertex colors are not aligned with the current vertex set")


def _is_real(value):
    return isinstance(value, numbers.Real) and not isinstance(value, bool) and np.isfinite(value)
