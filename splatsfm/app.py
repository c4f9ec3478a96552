"""Command-line entry point and a quick synthetic COLMAP reconstruction writer."""

from __future__ import annotations

import argparse
import math
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from .production_demo import run_production_demo

_f32 = np.float32
_OBSERVATIONS_PER_IMAGE = 10
_POINTS_PER_IMAGE = 10


def _display_f32(value: float) -> str:
    """Shortest round-trip text of a single-precision value, without a trailing ``.0``."""
    return np.format_float_positional(_f32(value), trim="-")


def _byte_plus_128(value: float) -> int:
    """Saturating cast to a byte (NaN becomes 0), then a wrapping add of 128."""
    v = float(value)
    byte = 0 if math.isnan(v) else int(min(max(v, 0.0), 255.0))
    return (byte + 128) % 256


def generate_production_colmap_output(
    num_images: int,
    width: int,
    height: int,
    output_dir: Union[str, Path] = "colmap_output",
) -> Path:
    """Write a synthetic cameras.txt, images.txt and points3D.txt into *output_dir*."""
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    fx = _f32(width) * _f32(0.8)
    fy = _f32(height) * _f32(0.8)
    cx = _f32(width) / _f32(2.0)
    cy = _f32(height) / _f32(2.0)
    with open(out / "cameras.txt", "w", encoding="utf-8") as fh:
        fh.write("# Camera list with one line of data per camera:\n")
        fh.write("#   CAMERA_ID, MODEL, WIDTH, HEIGHT, PARAMS[]\n")
        fh.write("# Number of cameras: 1\n")
        params = " ".join(_display_f32(p) for p in (fx, fy, cx, cy))
        fh.write(f"1 PINHOLE {width} {height} {params}\n")

    with open(out / "images.txt", "w", encoding="utf-8") as fh:
        fh.write("# Image list with two lines of data per image:\n")
        fh.write("#   IMAGE_ID, QW, QX, QY, QZ, TX, TY, TZ, CAMERA_ID, NAME\n")
        fh.write("#   POINTS2D[] as (X, Y, POINT3D_ID)\n")
        fh.write(f"# Number of images: {num_images}\n")
        for i in range(num_images):
            half_angle = _f32(i) * _f32(0.1) / _f32(2.0)
            pose = (
                np.cos(half_angle),
                0.0,
                np.sin(half_angle),
                0.0,
                _f32(i) * _f32(0.1),
                0.0,
                _f32(i) * _f32(0.05),
            )
            fh.write(
                f"{i + 1} " + " ".join(f"{float(v):.6f}" for v in pose)
                + f" 1 image_{i:04d}.jpg\n"
            )
            fh.write(
                "".join(
                    f"{float(_f32(100.0) + _f32(j) * _f32(50.0)):.1f} "
                    f"{float(_f32(100.0) + _f32(j) * _f32(30.0)):.1f} "
                    f"{i * _OBSERVATIONS_PER_IMAGE + j + 1} "
                    for j in range(_OBSERVATIONS_PER_IMAGE)
                )
            )
            fh.write("\n")

    num_points = num_images * _POINTS_PER_IMAGE
    with open(out / "points3D.txt", "w", encoding="utf-8") as fh:
        fh.write("# 3D point list with one line of data per point:\n")
        fh.write(
            "#   POINT3D_ID, X, Y, Z, R, G, B, ERROR, TRACK[] as (IMAGE_ID, POINT2D_IDX)\n"
        )
        fh.write(f"# Number of points: {num_points}\n")
        for i in range(num_points):
            x = _f32(i % 100) * _f32(0.1)
            y = _f32(i // 100) * _f32(0.1)
            z = _f32(5.0) + np.sin(_f32(i) * _f32(0.01)) * _f32(2.0)
            r = _byte_plus_128(x * _f32(25.0))
            g = _byte_plus_128(y * _f32(25.0))
            b = _byte_plus_128(z * _f32(50.0))
            fh.write(
                f"{i + 1} {float(x):.6f} {float(y):.6f} {float(z):.6f} "
                f"{r} {g} {b} {0.5:.6f} "
            )
            num_views = 2 + i % 4
            fh.write("".join(f"{i // 10 + v + 1} {i % 10} " for v in range(num_views)))
            fh.write("\n")

    print("✅ Generated production COLMAP files:")
    print(f"   📁 cameras.txt    - {width}x{height} camera model")
    print(f"   📁 images.txt     - {num_images} camera poses")
    print(f"   📁 points3D.txt   - {num_points} 3D points")
    return out


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the production SfM demo and write its COLMAP reconstruction."""
    parser = argparse.ArgumentParser(
        prog="splatsfm",
        description="Structure from Motion demo pipeline producing COLMAP output",
    )
    parser.add_argument(
        "-o",
        "--output",
        default="colmap_output",
        help="directory for cameras.txt, images.txt and points3D.txt",
    )
    args = parser.parse_args(argv)
    run_production_demo(args.output)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())