"""Reading COLMAP text reconstructions and converting them to NeRFStudio format."""

from __future__ import annotations

import os
import re
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from .nerfstudio import (
    CameraModel,
    Frame,
    NerfStudioBuilder,
    NerfStudioTransforms,
    colmap_to_nerf_camera,
    quaternion_to_matrix,
)

PathLike = Union[str, Path]

_U32_PATTERN = re.compile(r"\+?[0-9]+")
_U32_MAX = 2**32 - 1
_DISCOVERABLE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "bmp", "tiff", "webp"})


def _parse_u32(token: str) -> int:
    if not _U32_PATTERN.fullmatch(token):
        raise ValueError(f"invalid unsigned integer: {token!r}")
    value = int(token)
    if value > _U32_MAX:
        raise ValueError(f"unsigned integer out of range: {token!r}")
    return value


def _parse_float(token: str) -> float:
    if "_" in token:
        raise ValueError(f"invalid float: {token!r}")
    return float(token)


def _is_skipped(line: str) -> bool:
    return line.startswith("#") or not line.strip()


@dataclass
class ColmapCamera:
    """One camera entry of a COLMAP ``cameras.txt`` file."""

    camera_id: int
    model: str
    width: int
    height: int
    params: list[float] = field(default_factory=list)


@dataclass
class ColmapImage:
    """One registered image of a COLMAP ``images.txt`` file."""

    image_id: int
    qw: float
    qx: float
    qy: float
    qz: float
    tx: float
    ty: float
    tz: float
    camera_id: int
    name: str
    points2d: list[tuple[float, float, int]] = field(default_factory=list)


def parse_cameras(path: PathLike) -> dict[int, ColmapCamera]:
    """Parse ``cameras.txt`` into a mapping from camera id to camera.

    Comment, blank and short lines are skipped; malformed numbers raise ``ValueError``.
    """
    content = Path(path).read_text(encoding="utf-8")
    cameras: dict[int, ColmapCamera] = {}
    for line in content.splitlines():
        if _is_skipped(line):
            continue
        parts = line.split()
        if len(parts) < 5:
            continue
        camera_id = _parse_u32(parts[0])
        cameras[camera_id] = ColmapCamera(
            camera_id=camera_id,
            model=parts[1],
            width=_parse_u32(parts[2]),
            height=_parse_u32(parts[3]),
            params=[_parse_float(p) for p in parts[4:]],
        )
    return cameras


def parse_images(path: PathLike) -> list[ColmapImage]:
    """Parse ``images.txt``; the points line after each image line is skipped."""
    content = Path(path).read_text(encoding="utf-8")
    images: list[ColmapImage] = []
    lines = iter(content.splitlines())
    for line in lines:
        if _is_skipped(line):
            continue
        parts = line.split()
        if len(parts) < 10:
            continue
        try:
            image_id = _parse_u32(parts[0])
        except ValueError:
            continue
        qw, qx, qy, qz, tx, ty, tz = (_parse_float(p) for p in parts[1:8])
        images.append(
            ColmapImage(
                image_id=image_id,
                qw=qw,
                qx=qx,
                qy=qy,
                qz=qz,
                tx=tx,
                ty=ty,
                tz=tz,
                camera_id=_parse_u32(parts[8]),
                name=parts[9],
            )
        )
        next(lines, None)
    return images


def _discover_images(image_dir: Path) -> Optional[list[str]]:
    try:
        entries = list(image_dir.iterdir())
    except OSError:
        return None
    names = sorted(
        entry.name
        for entry in entries
        if entry.is_file() and entry.suffix[1:].lower() in _DISCOVERABLE_EXTENSIONS and entry.suffix
    )
    return names or None


def _stem(name: str) -> str:
    return Path(name).stem or name


class ColmapToNerfConverter:
    """Converts a COLMAP text reconstruction into a NeRFStudio dataset directory."""

    def __init__(self, colmap_dir: PathLike, image_dir: PathLike, output_dir: PathLike) -> None:
        self.colmap_dir = Path(colmap_dir)
        self.image_dir = Path(image_dir)
        self.output_dir = Path(output_dir)
        self.actual_image_names = _discover_images(self.image_dir)

    def convert(self) -> NerfStudioTransforms:
        """Write ``transforms.json`` and an ``images`` directory; return the transforms."""
        print("🔄 Converting COLMAP to NeRFStudio format...")

        cameras = parse_cameras(self.colmap_dir / "cameras.txt")
        images = parse_images(self.colmap_dir / "images.txt")

        if not cameras:
            raise ValueError("No cameras found in COLMAP output")
        if not images:
            raise ValueError("No images found in COLMAP output")

        camera = next(iter(cameras.values()))
        fl_x, fl_y, cx, cy = self._intrinsics(camera)

        builder = (
            NerfStudioBuilder()
            .set_camera_model(CameraModel.OPENCV)
            .set_intrinsics(fl_x, fl_y, cx, cy, camera.width, camera.height)
        )

        mapping = self._image_mapping(images)
        for count, image in enumerate(images, start=1):
            rotation = quaternion_to_matrix(image.qw, image.qx, image.qy, image.qz)
            transform = colmap_to_nerf_camera(rotation, (image.tx, image.ty, image.tz))
            actual_name = mapping.get(image.name, image.name)
            builder.add_frame(
                Frame(file_path=f"images/{actual_name}", transform_matrix=transform.tolist())
            )
            if count % 10 == 0:
                print(f"  Converted {count}/{len(images)} images")

        transforms = builder.build()

        self.output_dir.mkdir(parents=True, exist_ok=True)
        (self.output_dir / "transforms.json").write_text(transforms.to_json(), encoding="utf-8")
        print(f"✅ Created transforms.json with {len(transforms.frames)} frames")

        output_images_dir = self.output_dir / "images"
        output_images_dir.mkdir(parents=True, exist_ok=True)
        self._setup_images(images, output_images_dir)
        return transforms

    @staticmethod
    def _intrinsics(camera: ColmapCamera) -> tuple[float, float, float, float]:
        params = camera.params
        if camera.model == "PINHOLE":
            if len(params) < 4:
                raise ValueError("Invalid PINHOLE camera parameters")
            return params[0], params[1], params[2], params[3]
        if camera.model == "SIMPLE_PINHOLE":
            if len(params) < 3:
                raise ValueError("Invalid SIMPLE_PINHOLE camera parameters")
            return params[0], params[0], params[1], params[2]
        raise ValueError(f"Unsupported camera model: {camera.model}")

    def _image_mapping(self, colmap_images: list[ColmapImage]) -> dict[str, str]:
        """Map COLMAP image names to files found on disk, by exact name or by stem."""
        actual = self.actual_image_names
        if actual is None:
            return {}
        actual_set = set(actual)
        mapping: dict[str, str] = {}
        for image in colmap_images:
            name = image.name
            if name in actual_set:
                mapping[name] = name
                continue
            stem = _stem(name)
            match = next((a for a in actual if _stem(a) == stem), None)
            if match is not None:
                mapping[name] = match
        return mapping

    def _setup_images(self, images: list[ColmapImage], output_images_dir: Path) -> None:
        print("📷 Setting up images...")
        for image in images:
            src = self.image_dir / image.name
            dst = output_images_dir / image.name
            if not src.exists():
                print(f"⚠️  Image not found: {src}", file=sys.stderr)
                continue
            if dst.exists() and os.path.samefile(src, dst):
                continue
            try:
                os.symlink(os.path.abspath(src), dst)
                continue
            except OSError:
                pass
            try:
                shutil.copyfile(src, dst)
            except OSError as exc:
                raise OSError(f"Failed to copy image: {src}") from exc
        print("✅ Images ready in output directory")


def convert_colmap_to_nerf(
    colmap_dir: PathLike, image_dir: PathLike, output_dir: PathLike
) -> NerfStudioTransforms:
    """Convert the COLMAP output in *colmap_dir* into a NeRFStudio dataset in *output_dir*."""
    return ColmapToNerfConverter(colmap_dir, image_dir, output_dir).convert()