"""
Shared mesh fixtures for the `roimesh` test suite.
"""

import numpy as np
import pytest

from roimesh.surf import CorticalMesh


def grid_sheet(z_level, half_width=2, normal_z=1.0):
    """
    Build a flat square grid of triangles at height `z_level`, with all normals along +/- z.

    Returns vertices, faces, and normals for a (2 * half_width + 1)^2 vertex sheet with unit
    spacing, centred on the z axis.
    """
    side = 2 * half_width + 1
    coords = np.arange(-half_width, half_width + 1, dtype=float)
    x_grid, y_grid = np.meshgrid(coords, coords, indexing='ij')
    vertices = np.column_stack([x_grid.ravel(), y_grid.ravel(),
                                np.full(side * side, z_level, dtype=float)])
    faces = []
    for i in range(side - 1):
        for j in range(side - 1):
            v_idx = i * side + j
            faces.append([v_idx, v_idx + 1, v_idx + side])
            faces.append([v_idx + 1, v_idx + side + 1, v_idx + side])
    normals = np.tile([0.0, 0.0, normal_z], (side * side, 1))
    return vertices, np.array(faces), normals


@pytest.fixture
def tetra_mesh():
    """
    Four vertices at the origin and on the three unit axes, closed by four faces.
    """
    vertices = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, 0, 1]], dtype=float)
    faces = np.array([[0, 1, 2], [0, 1, 3], [1, 2, 3], [0, 2, 3]])
    return CorticalMesh(vertices, faces, color=(0.5, 0.5, 0.5))


@pytest.fixture
def octahedron():
    """
    Vertices and outward-wound faces of the unit octahedron.
    """
    vertices = np.array([[1, 0, 0], [-1, 0, 0], [0, 1, 0],
                         [0, -1, 0], [0, 0, 1], [0, 0, -1]], dtype=float)
    faces = np.array([[0, 2, 4], [2, 1, 4], [1, 3, 4], [3, 0, 4],
                      [2, 0, 5], [1, 2, 5], [3, 1, 5], [0, 3, 5]])
    return vertices, faces


@pytest.fixture
def two_sheet_mesh():
    """
    Two parallel 5x5 sheets at z=0 and z=4, both with normals pointing along +z.

    A region placed between them at z=2 is reachable along the normals of the lower sheet only.
    """
    low_v, low_f, low_n = grid_sheet(0.0)
    high_v, high_f, high_n = grid_sheet(4.0)
    vertices = np.vstack([low_v, high_v])
    faces = np.vstack([low_f, high_f + low_v.shape[0]])
    normals = np.vstack([low_n, high_n])
    return CorticalMesh(vertices, faces, normals=normals)
