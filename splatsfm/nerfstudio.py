"""NeRFStudio ``transforms.json`` data model and COLMAP coordinate conversion."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

import numpy as np

_COLMAP_TO_NERF_FLIP = np.diag([1.0, -1.0, -1.0])


class CameraModel(Enum):
    """Camera model types supported by NeRFStudio."""

    OPENCV = "OPENCV"
    OPENCV_FISHEYE = "OPENCV_FISHEYE"


def _matrix_4x4(values: Any) -> list[list[float]]:
    rows = [[float(v) for v in row] for row in values]
    if len(rows) != 4 or any(len(row) != 4 for row in rows):
        raise ValueError("transform_matrix must be a 4x4 matrix")
    return rows


@dataclass
class Frame:
    """Per-frame entry of a transforms.json file."""

    file_path: str
    transform_matrix: Sequence[Sequence[float]]
    fl_x: Optional[float] = None
    fl_y: Optional[float] = None
    depth_file_path: Optional[str] = None
    mask_path: Optional[str] = None

    def __post_init__(self) -> None:
        self.transform_matrix = _matrix_4x4(self.transform_matrix)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready mapping, leaving out unset optional fields."""
        result: dict[str, Any] = {
            "file_path": self.file_path,
            "transform_matrix": [list(row) for row in self.transform_matrix],
        }
        optional = {
            "fl_x": None if self.fl_x is None else float(self.fl_x),
            "fl_y": None if self.fl_y is None else float(self.fl_y),
            "depth_file_path": self.depth_file_path,
            "mask_path": self.mask_path,
        }
        result.update({key: value for key, value in optional.items() if value is not None})
        return result


@dataclass
class NerfStudioTransforms:
    """Contents of a NeRFStudio transforms.json file."""

    camera_model: Optional[CameraModel] = None
    fl_x: Optional[float] = None
    fl_y: Optional[float] = None
    cx: Optional[float] = None
    cy: Optional[float] = None
    w: Optional[int] = None
    h: Optional[int] = None
    k1: Optional[float] = None
    k2: Optional[float] = None
    k3: Optional[float] = None
    k4: Optional[float] = None
    p1: Optional[float] = None
    p2: Optional[float] = None
    frames: list[Frame] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-ready mapping, leaving out unset optional fields."""
        result: dict[str, Any] = {}
        if self.camera_model is not None:
            result["camera_model"] = self.camera_model.value
        for name in ("fl_x", "fl_y", "cx", "cy"):
            value = getattr(self, name)
            if value is not None:
                result[name] = float(value)
        for name in ("w", "h"):
            value = getattr(self, name)
            if value is not None:
                result[name] = int(value)
        for name in ("k1", "k2", "k3", "k4", "p1", "p2"):
            value = getattr(self, name)
            if value is not None:
                result[name] = float(value)
        result["frames"] = [frame.to_dict() for frame in self.frames]
        return result

    def to_json(self) -> str:
        """Serialise to pretty-printed JSON."""
        return json.dumps(self.to_dict(), indent=2)


def colmap_to_nerf_camera(rotation: Any, translation: Any) -> np.ndarray:
    """Convert a COLMAP/OpenCV camera (+Y down, +Z forward) to NeRF/OpenGL (+Y up, +Z back).

    Returns a 4x4 matrix whose upper-left block is the flipped rotation and whose
    last column holds the flipped translation.
    """
    rot = np.asarray(rotation, dtype=float)
    trans = np.asarray(translation, dtype=float).reshape(-1)
    if rot.shape != (3, 3):
        raise ValueError("rotation must be a 3x3 matrix")
    if trans.shape != (3,):
        raise ValueError("translation must have three components")

    transform = np.eye(4)
    transform[:3, :3] = _COLMAP_TO_NERF_FLIP @ rot
    transform[:3, 3] = _COLMAP_TO_NERF_FLIP @ trans
    return transform


def quaternion_to_matrix(qw: float, qx: float, qy: float, qz: float) -> np.ndarray:
    """Convert a (not necessarily normalised) quaternion to a 3x3 rotation matrix."""
    q = np.array([qw, qx, qy, qz], dtype=float)
    norm = np.linalg.norm(q)
    if norm == 0.0:
        raise ValueError("cannot build a rotation from a zero quaternion")
    w, x, y, z = q / norm
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ]
    )


def colmap_to_nerf_intrinsics(
    focal_length: float,
    principal_point_x: float,
    principal_point_y: float,
    width: int,
    height: int,
) -> tuple[float, float, float, float]:
    """Return ``(fl_x, fl_y, cx, cy)`` for a single-focal-length COLMAP camera."""
    return (
        float(focal_length),
        float(focal_length),
        float(principal_point_x),
        float(principal_point_y),
    )


class NerfStudioBuilder:
    """Fluent builder for :class:`NerfStudioTransforms`."""

    def __init__(self) -> None:
        self._transforms = NerfStudioTransforms(
            camera_model=CameraModel.OPENCV,
            k1=0.0,
            k2=0.0,
            p1=0.0,
            p2=0.0,
        )

    def set_camera_model(self, model: CameraModel) -> "NerfStudioBuilder":
        self._transforms.camera_model = CameraModel(model)
        return self

    def set_intrinsics(
        self, fl_x: float, fl_y: float, cx: float, cy: float, w: int, h: int
    ) -> "NerfStudioBuilder":
        t = self._transforms
        t.fl_x, t.fl_y, t.cx, t.cy = float(fl_x), float(fl_y), float(cx), float(cy)
        t.w, t.h = int(w), int(h)
        return self

    def add_frame(self, frame: Frame) -> "NerfStudioBuilder":
        self._transforms.frames.append(frame)
        return self

    def build(self) -> NerfStudioTransforms:
        return self._transforms