"""CLI entry point for heightmap generation and tiled export."""

from __future__ import annotations

import argparse
from datetime import datetime, timezone
import logging
from pathlib import Path
import platform
import shutil
import tempfile
import time

import numpy as np
from wgen.config import DEFAULT_EXPORT_SIZE, DEFAULT_SEED, BitDepth, ExportConfig, LandMassConfig
from wgen.derive import preview_u8, terrain_colormap_rgb
from wgen.errors import ConfigurationError
from wgen.export import export_tiles, write_tiles
from wgen.generators import GeneratorKind
from wgen.io import (
    load_mask_image,
    move_tree_contents,
    resolve_output_dir,
    safe_clean_output_dir,
    write_json,
    write_png_rgb,
    write_png_u8,
)
from wgen.pipeline import Pipeline, default_steps
from wgen.project import load_project, save_project


def _seed_arg(text: str) -> int:
    try:
        return int(text, 0)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid seed {text!r}: expected an integer (0x prefix for hex)") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Layered heightmap generator with tiled export")
    parser.add_argument("--project", help="Project JSON file with seed and steps (default: built-in stack)")
    parser.add_argument("--seed", type=_seed_arg, default=None, help="Base seed; overrides the project seed")
    parser.add_argument("--name", default=None, help="Output subdirectory name (default: project name or seed)")
    parser.add_argument("--out", default="out", help="Output root directory")
    parser.add_argument("--w", type=int, default=DEFAULT_EXPORT_SIZE, help="Export width in cells")
    parser.add_argument("--h", type=int, default=DEFAULT_EXPORT_SIZE, help="Export height in cells")
    parser.add_argument("--tiles", type=int, nargs=2, default=(1, 1), metavar=("TX", "TY"), help="Tile grid size")
    parser.add_argument("--bits", type=int, choices=(8, 16, 32), default=16, help="Tile bit depth (32 = float TIFF)")
    parser.add_argument("--seamless", action="store_true", help="Share one row/column of samples between tiles")
    parser.add_argument(
        "--mask",
        nargs=2,
        action="append",
        default=[],
        metavar=("STEP", "IMAGE"),
        help="Grayscale mask image for a step index (repeatable)",
    )
    parser.add_argument("--workers", type=int, default=None, help="Worker threads (default: CPU count)")
    parser.add_argument("--save-project", default=None, help="Write the pipeline used to this project file")
    parser.add_argument("--overwrite", action="store_true", help="Overwrite files in existing output directory")
    parser.add_argument(
        "--json",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write metadata JSON files",
    )
    parser.add_argument("--verbose", action="store_true", help="Log every pipeline step")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        pipeline = _build_pipeline(args)
        export_config = ExportConfig(
            tiles_x=args.tiles[0],
            tiles_y=args.tiles[1],
            bit_depth=BitDepth(args.bits),
            seamless=args.seamless,
        )
        export_config.validate()
        export_pipeline = pipeline.with_resolution((args.w, args.h))
    except (ConfigurationError, OSError) as exc:
        parser.error(str(exc))

    name = args.name or (Path(args.project).stem if args.project else f"seed_{pipeline.seed}")

    generation_start = time.perf_counter()
    field = export_pipeline.get_field()
    generation_seconds = time.perf_counter() - generation_start
    tiles = export_tiles(field, export_config)

    water_level = _water_level(pipeline)
    preview_8 = preview_u8(field)
    preview_rgb = terrain_colormap_rgb(field, water_level)
    lo, hi = field.min_max()
    land_fraction = float(np.mean(field.data >= water_level))

    out_dir = resolve_output_dir(args.out, name, args.w, args.h, overwrite=args.overwrite)

    stage_dir = Path(tempfile.mkdtemp(prefix=".staging-", dir=str(out_dir.parent)))
    try:
        write_tiles(tiles, stage_dir)
        write_png_u8(stage_dir / "preview.png", preview_8)
        write_png_rgb(stage_dir / "preview_color.png", preview_rgb)
        if args.json:
            timestamp = datetime.now(timezone.utc).isoformat()
            deterministic_meta = {
                "name": name,
                "seed": pipeline.seed,
                "width": args.w,
                "height": args.h,
                "export": export_config.to_dict(),
                "steps": [step.to_dict() for step in pipeline.steps],
                "tiles": [
                    {"x": tile.x, "y": tile.y, "file": tile.filename, "width": tile.width, "height": tile.height}
                    for tile in tiles
                ],
                "stats": {
                    "min": lo,
                    "max": hi,
                    "mean": float(field.data.mean()),
                    "water_level": water_level,
                    "land_fraction": land_fraction,
                },
            }
            meta = {
                **deterministic_meta,
                "generated_at_utc": timestamp,
                "generation_seconds": generation_seconds,
                "workers": args.workers,
                "python_version": platform.python_version(),
                "numpy_version": np.__version__,
            }
            write_json(stage_dir / "deterministic_meta.json", deterministic_meta)
            write_json(stage_dir / "meta.json", meta)

        safe_clean_output_dir(out_dir, out_root=Path(args.out))
        move_tree_contents(stage_dir, out_dir)
    finally:
        shutil.rmtree(stage_dir, ignore_errors=True)

    if args.save_project:
        save_project(args.save_project, pipeline)

    print(f"Generated heightmap: {out_dir}")
    print(f"Steps: {', '.join(step.kind.value for step in pipeline.steps)} (seed {pipeline.seed:#x})")
    print(f"Range {lo:.3f}..{hi:.3f}; land fraction {land_fraction:.3f} at water level {water_level:.2f}")
    print(f"Generation time: {generation_seconds:.3f} s ({args.w}x{args.h})")
    print(f"Tiles: {len(tiles)} ({args.tiles[0]}x{args.tiles[1]}, {args.bits}-bit{', seamless' if args.seamless else ''})")
    file_count = sum(1 for child in out_dir.iterdir() if child.is_file())
    print(f"Output files: {file_count}")
    return 0


def _build_pipeline(args: argparse.Namespace) -> Pipeline:
    if args.project:
        pipeline = load_project(args.project, workers=args.workers)
    else:
        pipeline = Pipeline(seed=DEFAULT_SEED, steps=default_steps(), workers=args.workers)
    if args.seed is not None:
        pipeline.set_seed(args.seed)
    for index, path in args.mask:
        try:
            step_index = int(index)
        except ValueError as exc:
            raise ConfigurationError(f"invalid step index for --mask: {index!r}") from exc
        pipeline.update_step(step_index, mask=load_mask_image(path))
    return pipeline


def _water_level(pipeline: Pipeline) -> float:
    for step in pipeline.steps:
        if step.kind is GeneratorKind.LAND_MASS and step.enabled:
            return float(step.params.water_level)
    return LandMassConfig().water_level


if __name__ == "__main__":
    raise SystemExit(main())
