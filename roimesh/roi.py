"""
Regions of interest: naming, resolution from NIfTI masks, and discovery on disk.

An ROI is a set of points in the coordinate space of the surface mesh it will be mapped onto,
plus a name used as the key under which the mapped vertices are registered. ROIs can be given
directly as coordinates or as paths to binary NIfTI images coregistered to the mesh; in the
latter case the voxel centres of all non-zero voxels are converted to world coordinates through
the image affine.

Functions
---------
sanitize_roi_name
    Turn a file or ROI name into an identifier usable as a registry key.
roi_from_nifti
    Load a binary mask and return its world coordinates and file name.
resolve_roi
    Normalize any supported ROI description into a `Roi` with a sanitized name.
load_rois
    Resolve several ROIs, optionally in parallel.
find_roi_files
    List NIfTI masks in a directory.
"""

import os
import re
import string

import nibabel as nib
import numpy as np
from joblib import Parallel, delayed

from roimesh.exceptions import InvalidInput
from roimesh.util import get_files

NIFTI_SUFFIXES = ('*.nii', '*.nii.gz')


class Roi:
    """
    Point set describing a region of interest in mesh coordinates.

    Parameters
    ----------
    coords : array_like, shape (N, 3)
        Coordinates of the points belonging to the region, already coregistered to the mesh.
    name : str
        Region name. It is sanitized when the ROI is mapped onto a mesh.
    """

    def __init__(self, coords, name):
        coords = np.array(coords, dtype=float)
        if coords.size == 0:
            coords = coords.reshape(0, 3)
        if coords.ndim != 2 or coords.shape[1] != 3:
            raise InvalidInput(f"ROI coordinates must have shape (N, 3), got {coords.shape}")
        if not np.all(np.isfinite(coords)):
            raise InvalidInput("ROI coordinates must be finite")
        coords.setflags(write=False)
        self.coords = coords
        self.name = name

    def __repr__(self):
        return f"<Roi name={self.name!r}, n_coords={self.coords.shape[0]}>"

    def __len__(self):
        return self.coords.shape[0]


def sanitize_roi_name(name):
    """
    Convert a raw ROI or file name into a registry key.

    Everything from the first dot onwards is stripped (so compound extensions such as
    `.nii.gz` disappear entirely), an `x` is prepended when the name starts with whitespace, an
    underscore or a digit, and remaining whitespace and hyphens are replaced by underscores.

    Parameters
    ----------
    name : str
        Raw name, e.g. a file name without its directory.

    Returns
    -------
    str
        Sanitized name.

    Raises
    ------
    InvalidInput
        If nothing is left of the name once the extension is removed.

    Examples
    --------
    >>> sanitize_roi_name('3_ROI.nii.gz')
    'x3_ROI'
    >>> sanitize_roi_name('left arcuate-seg.nii')
    'left_arcuate_seg'
    """
    name = str(name).split('.', 1)[0]
    if not name:
        raise InvalidInput("ROI name is empty")
    if name[0].isspace() or name[0] == '_' or name[0] in string.digits:
        name = 'x' + name
    return re.sub(r'[\s\-]', '_', name)


def roi_from_nifti(roi_path, threshold=0):
    """
    Read a binary NIfTI mask and return the world coordinates of its voxels.

    Parameters
    ----------
    roi_path : str or os.PathLike
        Path to the `.nii` / `.nii.gz` mask, coregistered to the target mesh.
    threshold : float, optional
        Voxels with values strictly above this threshold belong to the ROI. Default is 0.

    Returns
    -------
    coords : np.ndarray, shape (N, 3)
        Voxel centres transformed by the image affine.
    raw_name : str
        File name of the mask, without its directory.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    if not os.path.exists(roi_path):
        raise FileNotFoundError(f"ROI image not found: {roi_path}")

    img = nib.load(roi_path)
    data = np.asanyarray(img.dataobj)
    if data.ndim > 3:
        data = data.reshape(data.shape[:3] + (-1,))[..., 0]
    ijk = np.argwhere(data > threshold)
    coords = nib.affines.apply_affine(img.affine, ijk)
    return coords.reshape(-1, 3), os.path.basename(os.fspath(roi_path))


def resolve_roi(roi, threshold=0):
    """
    Turn an ROI description into a `Roi` whose name is sanitized.

    Parameters
    ----------
    roi : Roi or tuple or str or os.PathLike
        An existing `Roi`, a `(coords, name)` pair, or a path to a NIfTI mask.
    threshold : float, optional
        Mask threshold used when `roi` is a path. Default is 0.

    Returns
    -------
    Roi
        New ROI with the same coordinates and a sanitized name.

    Raises
    ------
    InvalidInput
        If `roi` is of an unsupported type.
    """
    if isinstance(roi, Roi):
        coords, raw_name = roi.coords, roi.name
    elif isinstance(roi, (str, os.PathLike)):
        coords, raw_name = roi_from_nifti(roi, threshold=threshold)
    elif isinstance(roi, tuple) and len(roi) == 2:
        coords, raw_name = roi
    else:
        raise InvalidInput(f"Cannot resolve ROI from {type(roi).__name__}")
    return Roi(coords, sanitize_roi_name(raw_name))


def load_rois(rois, threshold=0, n_jobs=1):
    """
    Resolve several ROI descriptions.

    Parameters
    ----------
    rois : iterable
        ROI descriptions accepted by `resolve_roi`.
    threshold : float, optional
        Mask threshold for NIfTI paths. Default is 0.
    n_jobs : int, optional
        Number of parallel workers for reading masks. Default is 1.

    Returns
    -------
    list of Roi
        Resolved ROIs, in input order.
    """
    rois = list(rois)
    if n_jobs == 1:
        return [resolve_roi(roi, threshold=threshold) for roi in rois]
    return Parallel(n_jobs=n_jobs, backend='loky')(
        delayed(resolve_roi)(roi, threshold=threshold) for roi in rois
    )


def find_roi_files(target_path, strings=(""), check="all", depth="all"):
    """
    List NIfTI ROI masks (`.nii` and `.nii.gz`) in a directory.

    Parameters
    ----------
    target_path : str or pathlib.Path
        Directory to search.
    strings : list of str, optional
        Substrings that file names must contain (see `roimesh.util.check_many`).
    check : {'all', 'any'}, optional
        Substring matching mode. Default is `'all'`.
    depth : {'all', 'one'}, optional
        Recursive (`'all'`) or top-level (`'one'`) search. Default is `'all'`.

    Returns
    -------
    list of pathlib.Path
        Matching files sorted by name.
    """
    files = []
    for suffix in NIFTI_SUFFIXES:
        files.extend(get_files(target_path, suffix, strings=strings, check=check, depth=depth))
    files.sort(key=lambda x: x.name)
    return files
