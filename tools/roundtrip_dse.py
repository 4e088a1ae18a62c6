#!/usr/bin/env python3
"""Round-trip SWDL/SMDL files through the container parser and encoder."""

from __future__ import annotations

import argparse
import glob
import logging
from pathlib import Path
import sys
from typing import Dict, Iterable, List, Optional, Sequence

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dse.container import parse  # noqa: E402
from dse.registry import Registry  # noqa: E402
from dse.text import Verbosity, from_text, to_text  # noqa: E402

SUFFIXES = (".swd", ".smd")


def collect_paths(patterns: Iterable[str], suffixes: Sequence[str] = SUFFIXES) -> List[Path]:
    """Expand globs and folders into a de-duplicated file list.

    A folder contributes the files directly inside it whose suffix is one of
    ``suffixes``; files named explicitly or matched by a glob are always kept.
    """
    found: Dict[Path, Path] = {}
    for pattern in patterns:
        candidates = [Path(p) for p in sorted(glob.glob(pattern, recursive=True))] or [Path(pattern)]
        for candidate in candidates:
            if candidate.is_dir():
                members = sorted(
                    p for p in candidate.iterdir() if p.is_file() and p.suffix.lower() in suffixes
                )
            elif candidate.is_file():
                members = [candidate]
            else:
                members = []
            for path in members:
                found.setdefault(path.resolve(), path)
    return list(found.values())


def first_diff(original: bytes, rebuilt: bytes) -> Optional[int]:
    """Offset of the first differing byte, or of the shorter end; None when equal."""
    if original == rebuilt:
        return None
    for offset, (left, right) in enumerate(zip(original, rebuilt)):
        if left != right:
            return offset
    return min(len(original), len(rebuilt))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Decode + re-encode .swd/.smd files and report mismatches."
    )
    parser.add_argument(
        "paths",
        nargs="+",
        help="File paths or glob patterns (quotes recommended for wildcards).",
    )
    parser.add_argument(
        "--via-text",
        choices=[mode.value for mode in Verbosity],
        help="Also pass each file through the JSON text form in this mode.",
    )
    parser.add_argument("--registry", type=Path, help="Registry JSON to use instead of the bundled one.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log parse diagnostics.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.ERROR,
        format="%(levelname)s %(name)s: %(message)s",
    )

    targets = collect_paths(args.paths)
    if not targets:
        parser.error("No files matched the provided paths/patterns.")

    registry = Registry.from_path(args.registry) if args.registry else Registry.bundled()

    failures = 0
    for path in targets:
        data = path.read_bytes()
        try:
            container = parse(data)
            diagnostics = container.diagnostics
            if args.via_text:
                text = to_text(container, Verbosity(args.via_text), registry)
                container = from_text(text, registry)
        except ValueError as exc:
            failures += 1
            print(f"ERR  {path}: {exc}")
            continue

        rebuilt = container.to_bytes()
        offset = first_diff(data, rebuilt)
        notes = f" ({len(diagnostics)} diagnostics)" if diagnostics else ""
        if offset is None:
            print(f"OK   {path}{notes}")
            continue

        failures += 1
        if offset == min(len(data), len(rebuilt)):
            print(f"FAIL {path}: size mismatch (orig={len(data)} new={len(rebuilt)}){notes}")
        else:
            print(
                f"FAIL {path}: diff at 0x{offset:04X} "
                f"(orig=0x{data[offset]:02X} new=0x{rebuilt[offset]:02X}){notes}"
            )

    return 1 if failures else 0


if __name__ == "__main__":
    raise SystemExit(main())
