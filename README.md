# splatsfm

Helpers for sparse Structure-from-Motion data used in Gaussian Splatting
workflows. The package can:

- load images into normalised grayscale `float32` arrays
  (`splatsfm.image_loader`),
- run a synthetic reconstruction pipeline and write a COLMAP text model
  (`cameras.txt`, `images.txt`, `points3D.txt`) (`splatsfm.production_demo`,
  `splatsfm.app`),
- read COLMAP text models and convert them to a NeRFStudio `transforms.json`
  (`splatsfm.colmap_to_nerf`, `splatsfm.nerfstudio`),
- run grid-based feature, descriptor, visibility, matching, pose and
  reprojection-error computations on flat NumPy buffers (`splatsfm.kernels`).

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Command line

```
splatsfm
splatsfm --output my_model
```

This runs the synthetic pipeline (100 images at 640×480: feature counts, a
visibility graph, camera poses along a circular path and triangulated points),
prints a summary of each stage, and writes `cameras.txt`, `images.txt` and
`points3D.txt` into `colmap_output/` or the directory given with `-o/--output`.

## Library use

Build a NeRFStudio transforms file by hand:

```python
from splatsfm.nerfstudio import NerfStudioBuilder, Frame

transforms = (
    NerfStudioBuilder()
    .set_intrinsics(512.0, 384.0, 320.0, 240.0, 640, 480)
    .add_frame(Frame(file_path="images/frame_00001.jpg",
                     transform_matrix=[[1, 0, 0, 0], [0, 1, 0, 0],
                                       [0, 0, 1, 0], [0, 0, 0, 1]]))
    .build()
)
print(transforms.to_json())
```

The builder starts with camera model `OPENCV` and zero `k1`, `k2`, `p1`, `p2`;
unset optional fields are left out of the JSON. `colmap_to_nerf_camera` and
`quaternion_to_matrix` in `splatsfm.nerfstudio` convert a COLMAP pose from the
COLMAP/OpenCV convention (+Y down, +Z forward) to the NeRF/OpenGL convention
(+Y up, +Z back).

Convert a COLMAP text model to NeRFStudio format:

```python
from splatsfm.colmap_to_nerf import convert_colmap_to_nerf

convert_colmap_to_nerf("colmap_output", "images", "nerf_output")
```

This writes `nerf_output/transforms.json` and links (or, failing that, copies)
the referenced images into `nerf_output/images/`. The first camera is used for
all frames; `PINHOLE` and `SIMPLE_PINHOLE` cameras are supported, and other
models raise `ValueError`. Frame paths use the matching file found in the image
directory, by exact name or by name without extension. `parse_cameras` and
`parse_images` can also be used on their own.

Generate a synthetic COLMAP model:

```python
from splatsfm.production_demo import run_production_demo
from splatsfm.app import generate_production_colmap_output

pipeline = run_production_demo("colmap_output")
print(len(pipeline.camera_poses), len(pipeline.points_3d))

generate_production_colmap_output(20, 640, 480, "small_model")
```

`ProductionSfMPipeline` exposes each stage separately
(`extract_features_hierarchical`, `build_visibility_graph`,
`incremental_reconstruction`, `generate_colmap_output`).

Load an image:

```python
from splatsfm.image_loader import ImageLoader

loader = ImageLoader().with_max_dimension(1024)
image = loader.load("images/frame_0001.jpg")
print(image.width, image.height, image.principal_point())
```

Images larger than the maximum dimension are shrunk with Lanczos resampling.
`extract_exif_focal_length` returns an estimate of 0.8 × the image diagonal;
it does not read EXIF data.

Grid kernels:

```python
import numpy as np
from splatsfm import kernels

image = kernels.generate_test_image(640, 480, 0)
grid = np.zeros(2 * 64 * 64 * 5, dtype=np.float32)
counts = np.zeros(2 * 64 * 64, dtype=np.uint32)
kernels.hierarchical_feature_extraction(image, grid, counts, 640, 480, 64, 0)
kernels.hierarchical_feature_extraction(image, grid, counts, 640, 480, 64, 1)
pairs = kernels.build_visibility_graph(grid, 2, 64, 10)
```

`extract_compressed_descriptors`, `cascade_matching`, `incremental_sfm_poses`
and `reprojection_errors` work on the same buffer layouts.

## What the package does not do

The reconstruction pipeline and the command line produce synthetic data: they
do not read a folder of photographs, detect or match real features, estimate
real camera poses, or run bundle adjustment. There is no command that turns a
folder of images into a reconstruction, and no PLY or trajectory export. The
kernels are building blocks on NumPy arrays, not a complete reconstruction
pipeline.