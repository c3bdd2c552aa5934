"""
Batch command line interface for the Pixel Snapper pipeline.

Every input image is snapped to its implicit grid and written as a PNG
(transparency survives even for JPEG inputs).  Diagnostic QC panels and a
metrics CSV are produced alongside so a batch can be reviewed at a glance.

Usage examples
--------------

Snap every sprite sheet in ``input/`` with a 16 colour palette::

    python -m pixel_snapper.cli input --output-dir output --k-colors 16

Snap one file, keep an 8x preview, and skip the QC overlays::

    python -m pixel_snapper.cli input/walk.png --upscale 8 --skip-overlays
"""

from __future__ import annotations

import argparse
import csv
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from PIL import Image

from .config import PixelSnapError, SnapConfig
from .qc_visual import save_profile_plot, save_qc_image
from .raster import load_raster
from .snapper import pixel_snap_with_grid

logger = logging.getLogger("pixel_snapper.cli")

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".tif", ".tiff", ".webp"}

METRIC_FIELDS = [
    "image",
    "source_width",
    "source_height",
    "output_width",
    "output_height",
    "step_x_estimate",
    "step_y_estimate",
    "step_x",
    "step_y",
    "palette_size",
    "output_path",
    "overlay_path",
]


@dataclass
class BatchConfig:
    """Runtime configuration derived from CLI arguments."""

    inputs: Sequence[Path]
    output_dir: Path
    overlay_dir: Optional[Path]
    save_overlays: bool
    grid_debug_dir: Optional[Path]
    metrics_path: Optional[Path]
    upscale: int
    snap: SnapConfig


def _setup_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _gather_images(sources: Sequence[Path], recursive: bool) -> List[Path]:
    """Collect candidate image files from the provided locations."""
    seen: set = set()
    images: List[Path] = []

    for source in sources:
        if source.is_dir():
            iterator: Iterable[Path] = source.rglob("*") if recursive else source.iterdir()
            candidates = [c for c in iterator if c.is_file() and c.suffix.lower() in IMAGE_EXTENSIONS]
        elif source.is_file():
            if source.suffix.lower() not in IMAGE_EXTENSIONS:
                logger.warning("Skipping unsupported file: %s", source)
                continue
            candidates = [source]
        else:
            logger.warning("Input path not found: %s", source)
            continue

        for candidate in candidates:
            resolved = candidate.resolve()
            if resolved not in seen:
                seen.add(resolved)
                images.append(resolved)

    images.sort()
    return images


def _ensure_dir(path: Optional[Path]) -> Optional[Path]:
    if path is None:
        return None
    path.mkdir(parents=True, exist_ok=True)
    return path


def _process_single_image(image_path: Path, cfg: BatchConfig) -> Optional[dict]:
    """Snap one image and persist its artefacts; returns the metrics row or None."""
    try:
        source = load_raster(image_path)
        result = pixel_snap_with_grid(source, cfg.snap)
    except PixelSnapError as exc:
        logger.error("Failed to process %s: %s", image_path.name, exc)
        return None

    snapped = result.image.to_pil()
    output_path = cfg.output_dir / f"{image_path.stem}_snapped.png"
    snapped.save(output_path)

    if cfg.upscale > 1:
        preview = snapped.resize(
            (snapped.width * cfg.upscale, snapped.height * cfg.upscale), resample=Image.NEAREST
        )
        preview.save(cfg.output_dir / f"{image_path.stem}_snapped_x{cfg.upscale}.png")

    overlay_path: Optional[Path] = None
    if cfg.save_overlays:
        overlay_root = _ensure_dir(cfg.overlay_dir or cfg.output_dir)
        overlay_path = save_qc_image(
            result, source, overlay_root / f"{image_path.stem}_qc.png", source_name=image_path.name
        )

    if cfg.grid_debug_dir:
        save_profile_plot(result, cfg.grid_debug_dir / f"{image_path.stem}_profiles.png", title=image_path.name)

    out_w, out_h = result.grid_size
    logger.info("[OK] %s: %dx%d -> %dx%d", image_path.name, source.width, source.height, out_w, out_h)

    return {
        "image": image_path.name,
        "source_width": source.width,
        "source_height": source.height,
        "output_width": out_w,
        "output_height": out_h,
        "step_x_estimate": "" if result.step_x_estimate is None else result.step_x_estimate,
        "step_y_estimate": "" if result.step_y_estimate is None else result.step_y_estimate,
        "step_x": round(result.step_x, 4),
        "step_y": round(result.step_y, 4),
        "palette_size": result.palette_size(),
        "output_path": str(output_path),
        "overlay_path": str(overlay_path) if overlay_path else "",
    }


def _write_metrics_csv(metrics: List[dict], path: Path) -> None:
    _ensure_dir(path.parent)
    with path.open("w", newline="") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=METRIC_FIELDS)
        writer.writeheader()
        writer.writerows(metrics)
    logger.info("Metrics written to %s", path)


def _add_snap_options(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("snapping parameters")
    defaults = SnapConfig()
    for spec in fields(SnapConfig):
        default = getattr(defaults, spec.name)
        group.add_argument(
            "--" + spec.name.replace("_", "-"),
            dest=spec.name,
            type=type(default),
            default=None,
            help=f"(default: {default})",
        )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Snap soft pixel art to its true pixel grid.")
    parser.add_argument(
        "inputs",
        nargs="+",
        type=Path,
        help="Image files or directories to process.",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory for snapped images (default: ./output).",
    )
    parser.add_argument(
        "--overlay-dir",
        type=Path,
        help="Optional directory for QC panels (defaults to output dir).",
    )
    parser.add_argument(
        "--skip-overlays",
        action="store_true",
        help="Do not export QC panel images.",
    )
    parser.add_argument(
        "--upscale",
        type=int,
        default=1,
        help="Also save the result magnified N times with nearest neighbour.",
    )
    parser.add_argument(
        "--grid-debug",
        action="store_true",
        help="Export gradient profile plots to <output>/grid_debug/.",
    )
    parser.add_argument(
        "--grid-debug-dir",
        type=Path,
        help="Custom directory for profile plots.",
    )
    parser.add_argument(
        "--recursive",
        action="store_true",
        help="When inputs include directories, walk them recursively.",
    )
    parser.add_argument(
        "--metrics-path",
        type=Path,
        help="Write a CSV summary to the provided path (defaults to <output>/metrics.csv).",
    )
    parser.add_argument(
        "--no-metrics",
        action="store_true",
        help="Do not emit the metrics CSV.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug logging.",
    )
    _add_snap_options(parser)
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    _setup_logging(args.debug)

    overrides = {spec.name: getattr(args, spec.name) for spec in fields(SnapConfig)}
    try:
        snap_config = SnapConfig().with_overrides({k: v for k, v in overrides.items() if v is not None})
    except PixelSnapError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    images = _gather_images(args.inputs, recursive=args.recursive)
    if not images:
        logger.error("No matching images found.")
        return 1

    output_dir = _ensure_dir(args.output_dir.resolve())

    grid_debug_dir: Optional[Path]
    if args.grid_debug_dir:
        grid_debug_dir = _ensure_dir(args.grid_debug_dir.resolve())
    elif args.grid_debug:
        grid_debug_dir = _ensure_dir(output_dir / "grid_debug")
    else:
        grid_debug_dir = None

    metrics_path: Optional[Path]
    if args.no_metrics:
        metrics_path = None
    else:
        metrics_path = args.metrics_path.resolve() if args.metrics_path else output_dir / "metrics.csv"

    cfg = BatchConfig(
        inputs=images,
        output_dir=output_dir,
        overlay_dir=args.overlay_dir.resolve() if args.overlay_dir else None,
        save_overlays=not args.skip_overlays,
        grid_debug_dir=grid_debug_dir,
        metrics_path=metrics_path,
        upscale=max(args.upscale, 1),
        snap=snap_config,
    )

    logger.info("Found %d image(s) to process -> %s", len(images), output_dir)
    metrics_records: List[dict] = []
    for image_path in images:
        record = _process_single_image(image_path, cfg)
        if record is not None:
            metrics_records.append(record)

    if metrics_records and cfg.metrics_path:
        _write_metrics_csv(metrics_records, cfg.metrics_path)

    return 0 if len(metrics_records) == len(images) else 1


if __name__ == "__main__":
    raise SystemExit(main())
