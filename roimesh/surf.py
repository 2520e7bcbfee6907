"""
Cortical surface mesh container and mesh geometry utilities.

This module defines the mesh object onto which regions of interest are projected, together with
the geometric helpers needed to build it: face adjacency, vertex normals, normal smoothing, and
vertex removal that produces a re-indexed display set while keeping track of the canonical
(origin) vertex list.

Public API
----------
Classes
--------
CorticalMesh
    Triangulated surface with origin vertices, optional normals, per-vertex colors, an optional
    current-to-origin vertex map, and the registry of ROIs mapped onto it.

Functions
---------
smooth_normals
    Iteratively average vertex normals over the one-ring neighbourhood.

Internal utilities handle GIFTI construction, adjacency matrices, and normal computation.
"""

import copy
import logging
import os

import nibabel as nib
import numpy as np
from scipy.sparse import csr_matrix

from roimesh.exceptions import GeometryError, InvalidInput

logger = logging.getLogger(__name__)

DEFAULT_MESH_COLOR = (0.8, 0.7, 0.6)


# pylint: disable=R0902
class CorticalMesh:
    """
    Triangulated cortical surface carrying vertex colors and mapped regions of interest.

    The mesh keeps a canonical vertex list (the *origin* set) that is never modified. Display
    operations such as vertex removal produce a *current* vertex set, a re-indexed subset of the
    origin set, tracked through `map2origin`. Vertex colors are always aligned with the current
    set, whereas ROI memberships always index the origin set.

    Parameters
    ----------
    vertices : array_like, shape (N, 3)
        Origin vertex coordinates.
    faces : array_like, shape (F, 3)
        Triangles as indices into `vertices`.
    normals : array_like, shape (N, 3), optional
        Per-vertex normals aligned with `vertices`. Complex values are accepted; only their real
        component is used.
    vertex_colors : array_like, shape (M, 3), optional
        RGB colors in [0, 1] aligned with the current vertex set. If None, every vertex is given
        `color`.
    map2origin : array_like of int, shape (M,), optional
        Injective map from current vertex position to origin vertex index. None means the current
        set is the origin set.
    color : sequence of float, optional
        Base color used when `vertex_colors` is not given. Default is `DEFAULT_MESH_COLOR`.

    Attributes
    ----------
    vertices : np.ndarray, shape (N, 3)
        Read-only origin vertex coordinates.
    faces : np.ndarray, shape (F, 3)
        Read-only origin faces.
    normals : np.ndarray or None
        Read-only origin normals.
    map2origin : np.ndarray or None
        Read-only current-to-origin map.
    vertex_colors : np.ndarray, shape (M, 3)
        Mutable current-set colors.
    roi : dict of str to set of int
        ROI membership, keyed by sanitized ROI name, valued by origin vertex indices.
    roi_show : list of str
        Display order of the registered ROIs.

    Raises
    ------
    GeometryError
        If a face or map entry references a vertex outside the origin set.
    InvalidInput
        If a vertex coordinate is not finite, array shapes are inconsistent or `map2origin` is
        not injective.
    """

    def __init__(self, vertices, faces, normals=None, vertex_colors=None, map2origin=None,
                 color=DEFAULT_MESH_COLOR):
        self.vertices = _frozen(np.array(vertices, dtype=float).reshape(-1, 3))
        self.faces = _frozen(np.array(faces, dtype=int).reshape(-1, 3))
        n_vertices = self.vertices.shape[0]
        if not np.all(np.isfinite(self.vertices)):
            raise InvalidInput("Vertex coordinates must be finite")

        if self.faces.size and (self.faces.min() < 0 or self.faces.max() >= n_vertices):
            raise GeometryError(
                f"Faces reference vertices outside the mesh (0..{n_vertices - 1})"
            )

        self.normals = None
        if normals is not None:
            normals = np.asarray(normals)
            if normals.shape != self.vertices.shape:
                raise InvalidInput(
                    f"Normals shape {normals.shape} does not match vertices "
                    f"{self.vertices.shape}"
                )
            self.normals = _frozen(normals.copy())

        self.map2origin = None
        if map2origin is not None:
            map2origin = np.asarray(map2origin, dtype=int).reshape(-1)
            if map2origin.size and (map2origin.min() < 0 or map2origin.max() >= n_vertices):
                raise GeometryError("Vertex map references indices outside the origin set")
            if np.unique(map2origin).size != map2origin.size:
                raise InvalidInput("Vertex map to origin must be injective")
            self.map2origin = _frozen(map2origin.copy())

        n_current = self.n_current
        if vertex_colors is None:
            vertex_colors = np.tile(np.asarray(color, dtype=float), (n_current, 1))
        vertex_colors = np.array(vertex_colors, dtype=float).reshape(-1, 3)
        if vertex_colors.shape[0] != n_current:
            raise InvalidInput(
                f"Expected {n_current} vertex colors, got {vertex_colors.shape[0]}"
            )
        self.vertex_colors = vertex_colors

        self.roi = {}
        self.roi_show = []

    def __repr__(self):
        return f"<CorticalMesh n_vertices={self.vertices.shape[0]}, " \
               f"n_faces={self.faces.shape[0]}, n_current={self.n_current}, " \
               f"rois={self.roi_show!r}>"

    @classmethod
    def from_gifti(cls, gifti_surf, color=DEFAULT_MESH_COLOR, compute_normals=False,
                   smooth_iter=0):
        """
        Build a mesh from a GIFTI surface.

        Parameters
        ----------
        gifti_surf : str or os.PathLike or nibabel.gifti.GiftiImage
            GIFTI image, or path to a `.gii` file.
        color : sequence of float, optional
            Base vertex color. Default is `DEFAULT_MESH_COLOR`.
        compute_normals : bool, optional
            Compute unit vertex normals from the faces when the file carries none. Default False.
        smooth_iter : int, optional
            Number of smoothing iterations applied to the normals (stored or computed).
            Default is 0.

        Returns
        -------
        CorticalMesh
            New mesh whose current set is the origin set.

        Raises
        ------
        FileNotFoundError
            If a path is given and does not exist.
        """
        if isinstance(gifti_surf, (str, os.PathLike)):
            if not os.path.exists(gifti_surf):
                raise FileNotFoundError(f"Surface not found: {gifti_surf}")
            gifti_surf = nib.load(gifti_surf)

        vertices = _darray_by_intent(gifti_surf, 'NIFTI_INTENT_POINTSET')
        faces = _darray_by_intent(gifti_surf, 'NIFTI_INTENT_TRIANGLE')
        if vertices is None or faces is None:
            raise InvalidInput("GIFTI surface must contain a pointset and a triangle array")
        normals = _darray_by_intent(gifti_surf, 'NIFTI_INTENT_VECTOR')

        if normals is None and compute_normals:
            normals, _ = _vertex_normal_vectors(vertices.astype(float), faces, unit=True)
        if normals is not None and smooth_iter > 0:
            normals = smooth_normals(faces, normals, n_iter=smooth_iter)

        logger.debug("Loaded surface with %d vertices and %d faces", len(vertices), len(faces))
        return cls(vertices, faces, normals=normals, color=color)

    def to_gifti(self):
        """
        Export the current vertex set (geometry and normals) as a GIFTI image.

        Returns
        -------
        nibabel.gifti.GiftiImage
            Surface with current vertices, re-indexed faces and, if present, real-valued normals.
        """
        normals = None
        if self.normals is not None:
            normals = np.real(self.normals)[self.origin_index]
        return _create_surf_gifti(self.current_vertices, self.current_faces, normals=normals)

    @property
    def is_origin(self):
        """True when the current vertex set is the origin set."""
        return self.map2origin is None

    @property
    def n_current(self):
        """Number of vertices in the current set."""
        if self.map2origin is None:
            return self.vertices.shape[0]
        return self.map2origin.shape[0]

    @property
    def origin_index(self):
        """Origin index of every current vertex."""
        if self.map2origin is None:
            return np.arange(self.vertices.shape[0])
        return self.map2origin

    @property
    def current_vertices(self):
        """Coordinates of the current vertex set."""
        if self.map2origin is None:
            return self.vertices
        return self.vertices[self.map2origin]

    @property
    def current_faces(self):
        """Faces of the current vertex set, re-indexed to current positions."""
        if self.map2origin is None:
            return self.faces
        return _reindex_faces(self.faces, self.map2origin, self.vertices.shape[0])

    def real_normals(self):
        """
        Return the real component of the origin normals.

        Raises
        ------
        InvalidInput
            If the mesh has no normals.
        """
        if self.normals is None:
            raise InvalidInput("Mesh has no normals")
        return np.real(self.normals).astype(float)

    def roi_vertices(self, name):
        """
        Positions in the current vertex set of the vertices belonging to an ROI.

        Parameters
        ----------
        name : str
            Registered ROI name.

        Returns
        -------
        np.ndarray of int
            Sorted current-set positions. Origin vertices absent from the current set are
            skipped.

        Raises
        ------
        KeyError
            If no ROI with this name is registered.
        """
        selection = np.fromiter(self.roi[name], dtype=int, count=len(self.roi[name]))
        return current_positions(self.map2origin, selection)

    def reset_colors(self, color=DEFAULT_MESH_COLOR):
        """Paint every current vertex with `color`, leaving ROI registrations intact."""
        self.vertex_colors[:] = np.asarray(color, dtype=float)

    def remove_vertices(self, vertices_to_remove):
        """
        Return a copy of the mesh with vertices removed from the current set.

        The origin set is shared and left unchanged; the new mesh's `map2origin` records which
        origin vertex each remaining current vertex stands for. Colors of the kept vertices and
        all ROI registrations are carried over.

        Parameters
        ----------
        vertices_to_remove : array_like of int
            Positions in the current vertex set to drop.

        Returns
        -------
        CorticalMesh
            Mesh with a re-indexed current set.

        Raises
        ------
        GeometryError
            If a position is outside the current set.
        """
        vertices_to_remove = np.asarray(vertices_to_remove, dtype=int).reshape(-1)
        if vertices_to_remove.size and (vertices_to_remove.min() < 0 or
                                        vertices_to_remove.max() >= self.n_current):
            raise GeometryError("Vertices to remove are outside the current vertex set")

        vertices_to_keep = np.setdiff1d(np.arange(self.n_current), vertices_to_remove)
        new_mesh = CorticalMesh(
            self.vertices,
            self.faces,
            normals=self.normals,
            vertex_colors=self.vertex_colors[vertices_to_keep],
            map2origin=self.origin_index[vertices_to_keep]
        )
        new_mesh.roi = copy.deepcopy(self.roi)
        new_mesh.roi_show = list(self.roi_show)
        return new_mesh


def current_positions(map2origin, origin_indices):
    """
    Translate origin vertex indices into positions of the current vertex set.

    Parameters
    ----------
    map2origin : np.ndarray or None
        Current-to-origin map; None means identity.
    origin_indices : array_like of int
        Indices into the origin set.

    Returns
    -------
    np.ndarray of int
        Sorted current-set positions whose origin index is in `origin_indices`.
    """
    origin_indices = np.asarray(origin_indices, dtype=int).reshape(-1)
    if map2origin is None:
        return np.unique(origin_indices)
    return np.where(np.isin(map2origin, origin_indices))[0]


def smooth_normals(faces, normals, n_iter=20, n_vertices=None):
    """
    Smooth vertex normals by repeated one-ring averaging.

    At every iteration each normal is replaced by the mean of itself and its edge-connected
    neighbours. The result is normalized to unit length; zero-length normals stay zero.

    Parameters
    ----------
    faces : np.ndarray, shape (F, 3)
        Triangular faces.
    normals : np.ndarray, shape (N, 3)
        Vertex normals. Only the real component is smoothed.
    n_iter : int, optional
        Number of averaging iterations. Default is 20.
    n_vertices : int, optional
        Number of vertices. Defaults to `len(normals)`.

    Returns
    -------
    np.ndarray, shape (N, 3)
        Smoothed unit normals.

    Examples
    --------
    >>> smoothed = smooth_normals(faces, normals, n_iter=20)
    >>> np.allclose(np.linalg.norm(smoothed, axis=1), 1)
    True
    """
    normals = np.real(np.asarray(normals)).astype(float)
    if n_vertices is None:
        n_vertices = normals.shape[0]
    adjacency = _mesh_adjacency(faces, n_vertices=n_vertices)
    degree = np.asarray(adjacency.sum(axis=1)).reshape(-1) + 1

    for _ in range(n_iter):
        normals = (adjacency @ normals + normals) / degree[:, np.newaxis]

    return _normit(normals)


# -------------------------------------------------------------------------
# Internal mesh utilities
# -------------------------------------------------------------------------

def _frozen(array):
    array.setflags(write=False)
    return array


def _darray_by_intent(gifti_surf, intent):
    darrays = [da for da in gifti_surf.darrays
               if da.intent == nib.nifti1.intent_codes[intent]]
    if not darrays:
        return None
    return darrays[0].data


def _reindex_faces(faces, map2origin, n_origin):
    """
    Restrict origin faces to a current vertex set and re-index them.

    Faces with any vertex outside the current set are dropped.
    """
    inverse = np.full(n_origin, -1, dtype=int)
    inverse[map2origin] = np.arange(map2origin.shape[0])
    new_faces = inverse[faces]
    return new_faces[np.all(new_faces >= 0, axis=1)]


def _mesh_adjacency(faces, n_vertices=None):
    """
    Compute a vertex adjacency matrix from a triangular surface mesh.

    Parameters
    ----------
    faces : np.ndarray, shape (F, 3)
        Array of triangular faces, where each row contains vertex indices.
    n_vertices : int, optional
        Number of vertices. If None, inferred as the largest face index + 1.

    Returns
    -------
    adjacency : scipy.sparse.csr_matrix, shape (V, V)
        Symmetric binary matrix; entry (i, j) = 1 when vertices *i* and *j* share an edge.
        The diagonal is zero.
    """

    faces = np.asarray(faces, dtype=int).reshape(-1, 3)
    if n_vertices is None:
        n_vertices = np.max(faces) + 1 if faces.size else 0

    row_indices = np.hstack([faces[:, 0], faces[:, 0], faces[:, 1],
                             faces[:, 1], faces[:, 2], faces[:, 2]])
    col_indices = np.hstack([faces[:, 1], faces[:, 2], faces[:, 0],
                             faces[:, 2], faces[:, 0], faces[:, 1]])

    adjacency = csr_matrix(
        (np.ones_like(row_indices), (row_indices, col_indices)),
        shape=(n_vertices, n_vertices)
    )

    # Duplicate edges are summed by the constructor
    adjacency = (adjacency > 0).astype(int)

    return adjacency


def _normit(vectors):
    """
    Normalize an array of vectors to unit length.

    Vectors with a norm below machine epsilon are left unchanged.

    Parameters
    ----------
    vectors : np.ndarray, shape (N, 3)
        Array of N vectors to normalize.

    Returns
    -------
    np.ndarray, shape (N, 3)
        Row-normalized vectors.
    """

    norm_n = np.sqrt(np.sum(vectors ** 2, axis=1))
    norm_n[norm_n < np.finfo(float).eps] = 1
    return vectors / norm_n[:, np.newaxis]


def _vertex_normal_vectors(vertices, faces, unit=False):
    """
    Compute per-vertex and per-face normal vectors for a triangular surface mesh.

    Face normals are the normalized cross product of two triangle edges; vertex normals are the
    sum of the normals of adjacent faces. If most vertex normals point toward the mesh centroid,
    all normals are flipped so that they point outward.

    Parameters
    ----------
    vertices : np.ndarray, shape (V, 3)
        Vertex coordinates.
    faces : np.ndarray, shape (F, 3)
        Triangular faces.
    unit : bool, optional
        If True, return unit-length normals. Default is False.

    Returns
    -------
    vertex_normal : np.ndarray, shape (V, 3)
    face_normal : np.ndarray, shape (F, 3)
    """
    vertices = np.asarray(vertices, dtype=float)
    faces = np.asarray(faces, dtype=int)
    face_normal = np.cross(
        vertices[faces[:, 1], :] - vertices[faces[:, 0], :],
        vertices[faces[:, 2], :] - vertices[faces[:, 0], :]
    )
    face_normal = _normit(face_normal)

    vertex_normal = np.zeros_like(vertices)
    for j in range(3):
        np.add.at(vertex_normal, faces[:, j], face_normal)

    centered_vertices = vertices - np.mean(vertices, axis=0)
    inward = np.sum(centered_vertices * vertex_normal, axis=1) < 0
    if np.count_nonzero(inward) > len(centered_vertices) / 2:
        vertex_normal = -vertex_normal
        face_normal = -face_normal

    if unit:
        vertex_normal = _normit(vertex_normal)
        face_normal = _normit(face_normal)

    return vertex_normal, face_normal


def _create_surf_gifti(vertices, faces, normals=None):
    """
    Construct a GIFTI surface object from vertex, face, and optional normal data.

    Vertices and normals are stored as `float32`, faces as `int32`, with the pointset, triangle
    and vector NIfTI intents respectively.

    Parameters
    ----------
    vertices : np.ndarray, shape (V, 3)
    faces : np.ndarray, shape (F, 3)
    normals : np.ndarray, shape (V, 3), optional

    Returns
    -------
    nibabel.gifti.GiftiImage
    """

    new_gifti = nib.gifti.GiftiImage()

    new_gifti.add_gifti_data_array(
        nib.gifti.GiftiDataArray(
            data=np.asarray(vertices).astype(np.float32),
            intent=nib.nifti1.intent_codes['NIFTI_INTENT_POINTSET']
        )
    )
    new_gifti.add_gifti_data_array(
        nib.gifti.GiftiDataArray(
            data=np.asarray(faces).astype(np.int32),
            intent=nib.nifti1.intent_codes['NIFTI_INTENT_TRIANGLE']
        )
    )

    if normals is not None:
        new_gifti.add_gifti_data_array(
            nib.gifti.GiftiDataArray(
                data=np.asarray(normals).astype(np.float32),
                intent=nib.nifti1.intent_codes['NIFTI_INTENT_VECTOR']
            ))

    return new_gifti
