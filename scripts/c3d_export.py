"""Export C3D marker and analog data to CSV tables.

Usage
-----
# One file, points + analog next to each other in output/
python scripts/c3d_export.py data/trial01.c3d

# Every .c3d below a directory, analog averaged to the point rate
python scripts/c3d_export.py --c3d_dir data --analog_average --out_dir output/csv

# Header/label summary only
python scripts/c3d_export.py data/trial01.c3d --summary
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

import pandas as pd
import polars as pl

import _bootstrap

_bootstrap.ensure_src_on_path()

from c3d_stream import C3DAdapter, C3DError, ReaderConfig, load_reader_config
from c3d_stream.io.export import BACKENDS, analog_to_dataframe, points_to_dataframe, read_c3d_analog, read_c3d_points

DEFAULT_OUT = _bootstrap.REPO_ROOT / "output"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export C3D points/analog to CSV")
    parser.add_argument("c3d", nargs="*", type=Path, help="C3D file(s) to export")
    parser.add_argument("--c3d_dir", type=Path, default=None, help="Export every *.c3d below this directory")
    parser.add_argument("--out_dir", type=Path, default=DEFAULT_OUT, help="Output directory")
    parser.add_argument("--config", type=Path, default=_bootstrap.DEFAULT_CONFIG, help="Path to config.yaml")
    parser.add_argument("--backend", choices=BACKENDS, default="polars", help="DataFrame library used for writing")
    parser.add_argument("--analog_average", action="store_true", help="Average analog samples per point frame")
    parser.add_argument("--summary", action="store_true", help="Print header and labels only")
    parser.add_argument("--encoding", type=str, default="utf-8-sig", help="CSV encoding (pandas backend)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log decoder details")
    return parser.parse_args()


def iter_c3d_files(c3d_dir: Path) -> list[Path]:
    return sorted([path for path in Path(c3d_dir).rglob("*.c3d") if path.is_file()])


def write_csv(df, out_csv: Path, *, encoding: str) -> None:
    out_csv.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(df, pl.DataFrame):
        df.write_csv(out_csv)
    elif isinstance(df, pd.DataFrame):
        df.to_csv(out_csv, index=False, encoding=encoding)
    else:
        raise TypeError(f"Unsupported DataFrame type: {type(df)!r}")


def print_summary(path: Path, config: ReaderConfig) -> None:
    with C3DAdapter.open(path, config) as adapter:
        header = adapter.header
        print(f"== {path.name} ({adapter.processor.name})")
        print(f"  frames: {header.first_frame}..{header.last_frame} @ {header.frame_rate:g} Hz")
        print(f"  points: {header.point_count} ({'float' if header.is_float else 'int16'}, scale={header.scale_factor:g})")
        print(f"  analog: {header.analog_channel_count} channels x {header.analog_per_frame} samples/frame")
        print(f"  point labels: {', '.join(adapter.point_labels() or [])}")
        print(f"  analog labels: {', '.join(adapter.analog_labels() or [])}")
        for event in header.events:
            print(f"  event {event.label!r} at {event.time:.3f} s")


def export_file(path: Path, args: argparse.Namespace, config: ReaderConfig) -> list[Path]:
    saved = []
    points = read_c3d_points(path, config)
    if points.labels:
        out_csv = args.out_dir / f"{path.stem}_points.csv"
        write_csv(points_to_dataframe(points, backend=args.backend), out_csv, encoding=args.encoding)
        saved.append(out_csv)

    analog = read_c3d_analog(path, average=args.analog_average, config=config)
    if analog.labels:
        out_csv = args.out_dir / f"{path.stem}_analog.csv"
        write_csv(analog_to_dataframe(analog, backend=args.backend), out_csv, encoding=args.encoding)
        saved.append(out_csv)
    return saved


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    config = load_reader_config(args.config) if args.config.exists() else ReaderConfig()
    files = list(args.c3d)
    if args.c3d_dir is not None:
        files += iter_c3d_files(args.c3d_dir)
    if not files:
        raise SystemExit("No C3D files given (pass paths or --c3d_dir).")

    processed = 0
    skipped = 0
    for path in files:
        try:
            if args.summary:
                print_summary(path, config)
            else:
                for out_csv in export_file(path, args, config):
                    print(f"[OK] Saved: {out_csv}")
            processed += 1
        except (C3DError, OSError) as exc:
            print(f"[SKIP] {path}: {exc}")
            skipped += 1

    print(f"Processed files: {processed}")
    print(f"Skipped files: {skipped}")


if __name__ == "__main__":
    main()
