"""
Mapping ROIs onto a surface
===========================
"""

# %%
# Build a surface
# ---------------
# A sphere of radius 50 mm stands in for a cortical surface. Its vertices are spread evenly with a
# Fibonacci lattice and triangulated with a convex hull. Normals are computed from the faces and
# smoothed over 20 iterations.

import os
import logging
import tempfile

import numpy as np
import nibabel as nib
from scipy.spatial import ConvexHull

from roimesh.surf import CorticalMesh
from roimesh.mapping import RoiMapConfig, add_roi, add_rois
from roimesh.roi import find_roi_files, sanitize_roi_name
from roimesh.util import setup_logging, make_directory
from roimesh.viz import roi_color_table, vertex_colors_to_int

setup_logging(level=logging.INFO)

n_vertices = 2000
radius = 50.0
idx = np.arange(n_vertices) + 0.5
phi = np.arccos(1 - 2 * idx / n_vertices)
theta = np.pi * (1 + 5 ** 0.5) * idx
vertices = radius * np.column_stack([np.cos(theta) * np.sin(phi),
                                     np.sin(theta) * np.sin(phi),
                                     np.cos(phi)])
faces = ConvexHull(vertices).simplices

# Hull simplices come in arbitrary winding; orient them all outward
tri = vertices[faces]
outward = np.sum(np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0]) * tri.mean(axis=1), axis=1)
faces[outward < 0] = faces[outward < 0][:, ::-1]

tmp_dir = tempfile.mkdtemp()
surf_fname = os.path.join(tmp_dir, 'lh.sphere.gii')
nib.save(CorticalMesh(vertices, faces).to_gifti(), surf_fname)

mesh = CorticalMesh.from_gifti(surf_fname, compute_normals=True, smooth_iter=20)
print(mesh)

# %%
# Write ROI masks
# ---------------
# Two binary masks on a 1 mm grid: a blob just outside the sphere surface and a blob just inside
# it on the opposite side.

roi_dir = make_directory(tmp_dir, 'rois')
affine = np.eye(4)
affine[:3, 3] = -60.0
shape = (121, 121, 121)
grid = np.stack(np.meshgrid(*[np.arange(s) - 60.0 for s in shape], indexing='ij'), axis=-1)

for fname, centre in [('left arcuate-seg.nii.gz', [0, 0, 53]),
                      ('3_ILF.nii.gz', [0, 0, -44])]:
    mask = (np.linalg.norm(grid - np.array(centre), axis=-1) <= 4).astype(np.uint8)
    nib.save(nib.Nifti1Image(mask, affine), os.path.join(roi_dir, fname))

roi_files = find_roi_files(roi_dir)
print([f.name for f in roi_files])

# %%
# Nearest-vertex mapping
# ----------------------
# Every ROI voxel claims its closest vertex. Names are sanitized: extensions are stripped, a
# leading digit gets an 'x' prefix, spaces and hyphens become underscores.

colors = roi_color_table(len(roi_files))
add_rois(mesh, roi_files, colors, n_jobs=2)
for name in mesh.roi_show:
    print(name, len(mesh.roi[name]))

# %%
# Distance threshold with normals
# -------------------------------
# Re-mapping under the same name replaces the vertex set. With a 6 mm threshold, vertices are
# kept only if stepping outward along their normal reaches the ROI, so the outer blob is mapped
# while the inner one, sitting behind the surface, is not.

mesh.reset_colors()
config = RoiMapConfig(dist_thresh=6, use_normals=True, alpha=0.8)
for roi_file, color in zip(roi_files, colors):
    add_roi(mesh, roi_file, color, config=config)
    name = sanitize_roi_name(roi_file.name)
    print(name, len(mesh.roi[name]))

# %%
# Dilation and a cropped display set
# ----------------------------------
# Removing the southern hemisphere from display keeps ROI registrations in origin indices, while
# colors follow the remaining vertices.

ilf_file = [f for f in roi_files if 'ILF' in f.name][0]
add_roi(mesh, ilf_file, (1.0, 0.5, 0.0), config=config, use_normals=False, dilate=2)
north = mesh.remove_vertices(np.where(mesh.vertices[:, 2] < 0)[0])
print(north)
print('ILF vertices displayed:', north.roi_vertices('x3_ILF').size)

packed = vertex_colors_to_int(north)
print(len(packed), 'packed vertex colors')
