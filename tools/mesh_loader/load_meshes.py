#!/usr/bin/env python3
"""Load mesh files in bulk and report which ones decode.

Usage:
    python load_meshes.py <input> [-j <max_active>] [-o <output>] [-v]

Examples:
    # Check a single file
    python load_meshes.py vehicle.mesh

    # Load every .mesh file under a directory, 15 at a time
    python load_meshes.py ./meshes/ -j 15

    # Load and export the good ones to GLB
    python load_meshes.py ./meshes/ -o ./output
"""
import argparse
import logging
import sys
from pathlib import Path

from bulk_loader import DEFAULT_MAX_ACTIVE, BulkMeshLoader
from gltf_exporter import MeshGLTFExporter
from logging_config import setup_logging

logger = logging.getLogger("load_meshes")


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Load mesh files concurrently and report decode results"
    )
    parser.add_argument(
        "input",
        help="Input mesh file or directory containing mesh files",
    )
    parser.add_argument(
        "--pattern",
        default="*.mesh",
        help="Glob pattern used when input is a directory (default: *.mesh)",
    )
    parser.add_argument(
        "-j", "--max-active",
        type=positive_int,
        default=DEFAULT_MAX_ACTIVE,
        help=f"Maximum number of files loading at once (default: {DEFAULT_MAX_ACTIVE})",
    )
    parser.add_argument(
        "-o", "--output",
        help="Export successfully loaded meshes as GLB files into this directory",
    )
    parser.add_argument(
        "--log-file",
        help="Also write log output to this file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )

    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.ERROR, args.log_file)

    # Collect input files
    input_path = Path(args.input)
    if input_path.is_file():
        files = [input_path]
    elif input_path.is_dir():
        files = sorted(input_path.rglob(args.pattern))
        if not files:
            print(f"No mesh files found in {input_path}", file=sys.stderr)
            return 1
    else:
        print(f"Input not found: {args.input}", file=sys.stderr)
        return 1

    loader = BulkMeshLoader(max_active=args.max_active)
    results = loader.load_all(files)
    stats = loader.stats

    if args.output:
        Path(args.output).mkdir(parents=True, exist_ok=True)

    exported = 0
    for path, result in results.items():
        if not result.ok:
            error = result.error
            print(f"Failed: {path} - {error.kind.value}: {error.message}", file=sys.stderr)
            continue

        if args.verbose:
            mesh = result.mesh
            print(f"Loaded: {path} ({mesh.vertex_count} vertices, {mesh.face_count} faces)")

        if args.output and result.mesh.face_count:
            output_file = Path(args.output) / f"{path.stem}.glb"
            MeshGLTFExporter(result.mesh, name=path.stem).export(output_file)
            exported += 1
            logger.debug("Exported %s -> %s", path, output_file)

    # Summary
    print(
        f"\nLoaded {stats.succeeded}/{stats.total} files in {stats.elapsed:.3f}s "
        f"(max active {args.max_active}, peak {stats.peak_active})"
    )
    for kind, count in sorted(stats.failures_by_kind().items(), key=lambda item: item[0].value):
        print(f"  {kind.value}: {count}")
    if args.output:
        print(f"Exported {exported} files to {args.output}")

    return 0 if stats.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
