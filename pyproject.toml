[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "splatsfm"
version = "0.1.0"
description = "Structure-from-Motion helpers for Gaussian Splatting: COLMAP text models, NeRFStudio transforms, NumPy grid kernels and a synthetic reconstruction pipeline"
requires-python = ">=3.10"
keywords = [
    "structure-from-motion",
    "sfm",
    "colmap",
    "nerfstudio",
    "gaussian-splatting",
    "photogrammetry",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Image Processing",
]
dependencies = [
    "numpy",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
    "numpy",
    "pillow",
]

[project.scripts]
splatsfm = "splatsfm.app:main"

[tool.hatch.build.targets.wheel]
packages = ["splatsfm"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
