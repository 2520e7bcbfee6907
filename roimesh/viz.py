"""
Color utilities for ROI-annotated surface meshes.

This module prepares the per-vertex colors that renderers consume: base shading from curvature,
distinct colors for a series of ROIs, and packing of RGB colors into 32-bit integers. It does not
render anything itself.

Functions
---------
rgbtoint(rgb)
    Convert an RGB color triplet to a 32-bit integer color code.
curvature_colors(curvature, gyral=..., sulcal=...)
    Two-tone base shading from curvature values or a FreeSurfer curvature file.
roi_color_table(n_rois, cmap='tab10')
    Distinct RGB colors for a series of ROIs.
vertex_colors_to_int(mesh)
    Packed integer colors of a mesh's current vertices.
"""

import os

import nibabel as nib
import numpy as np
from matplotlib import colors
import matplotlib.pyplot as plt

GYRAL_COLOR = (166 / 255, 166 / 255, 166 / 255)
SULCAL_COLOR = (64 / 255, 64 / 255, 64 / 255)


def rgbtoint(rgb):
    """
    Convert an RGB triplet (0-255) to a 32-bit integer, packed as `R << 16 | G << 8 | B`.

    Parameters
    ----------
    rgb : array_like of int, shape (3,)
        RGB color triplet with values in the range [0, 255].

    Returns
    -------
    int
        Packed color.

    Raises
    ------
    AssertionError
        If any RGB component is outside the valid range [0, 255].
    """

    if isinstance(rgb, list):
        rgb = np.array(rgb)
    assert np.all((0 <= rgb) & (rgb <= 255)), "Requires integer RGB (values 0-255)"
    color = 0
    for rgb_val in rgb:
        color = (color << 8) + int(rgb_val)
    return color


def curvature_colors(curvature, gyral=GYRAL_COLOR, sulcal=SULCAL_COLOR):
    """
    Two-tone vertex shading from cortical curvature.

    Vertices with curvature <= 0 (gyri in FreeSurfer's convention) get `gyral`, the others
    `sulcal`. The result can be passed as `vertex_colors` when building a `CorticalMesh`.

    Parameters
    ----------
    curvature : array_like or str or os.PathLike
        Per-vertex curvature, or path to a FreeSurfer morphometry file (e.g. `lh.curv`).
    gyral, sulcal : sequence of float, optional
        RGB colors in [0, 1].

    Returns
    -------
    np.ndarray, shape (n, 3)
        RGB colors in [0, 1].
    """
    if isinstance(curvature, (str, os.PathLike)):
        curvature = nib.freesurfer.read_morph_data(curvature)
    curvature = np.asarray(curvature).reshape(-1)
    shading = np.empty((curvature.shape[0], 3))
    shading[curvature <= 0, :] = gyral
    shading[curvature > 0, :] = sulcal
    return shading


def roi_color_table(n_rois, cmap='tab10'):
    """
    Pick `n_rois` RGB colors in [0, 1] from a matplotlib colormap.

    Qualitative colormaps are cycled; continuous ones are sampled evenly.
    """
    c_map = plt.get_cmap(cmap)
    if isinstance(c_map, colors.ListedColormap) and c_map.N <= 20:
        samples = np.arange(n_rois) % c_map.N
        return np.asarray(c_map.colors)[samples, :3]
    return c_map(np.linspace(0, 1, n_rois))[:, :3]


def vertex_colors_to_int(mesh):
    """
    Packed 32-bit colors of the current vertices of a mesh, for renderers that take them.

    Parameters
    ----------
    mesh : roimesh.surf.CorticalMesh
        Mesh with colors in [0, 1].

    Returns
    -------
    list of int
        One packed color per current vertex.
    """
    rgb = np.clip(np.rint(mesh.vertex_colors * 255), 0, 255).astype(int)
    return [rgbtoint(c) for c in rgb]
