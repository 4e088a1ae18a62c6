#!/usr/bin/env python3
"""Convert SWDL/SMDL files to their JSON text form and back.

Examples
--------
Export every sequence in a folder, leaving out opaque fields at their defaults:
    python tools/dse_text.py to-text "bgm/*.smd" --compact -o text/

Rebuild binaries from edited text:
    python tools/dse_text.py from-text "text/*.json" -o out/
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
from typing import List, Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dse.container import FormatKind, parse  # noqa: E402
from dse.registry import Registry  # noqa: E402
from dse.text import Verbosity, from_text, to_text  # noqa: E402
from tools.roundtrip_dse import SUFFIXES, collect_paths  # noqa: E402

log = logging.getLogger("dse_text")

EXTENSIONS = {FormatKind.SWDL: ".swd", FormatKind.SMDL: ".smd"}


def _output_path(source: Path, out_dir: Optional[Path], name: str) -> Path:
    folder = out_dir if out_dir is not None else source.parent
    folder.mkdir(parents=True, exist_ok=True)
    return folder / name


def to_text_cmd(paths: List[Path], out_dir: Optional[Path], mode: Verbosity, registry: Registry) -> int:
    failures = 0
    for path in paths:
        try:
            container = parse(path.read_bytes())
        except ValueError as exc:
            failures += 1
            print(f"ERR  {path}: {exc}")
            continue
        for diag in container.diagnostics:
            log.info("%s: %s", path, diag)
        target = _output_path(path, out_dir, path.name + ".json")
        target.write_text(to_text(container, mode, registry), encoding="utf-8")
        print(f"OK   {path} -> {target}")
    return 1 if failures else 0


def from_text_cmd(paths: List[Path], out_dir: Optional[Path], registry: Registry) -> int:
    failures = 0
    for path in paths:
        try:
            container = from_text(path.read_text(encoding="utf-8"), registry)
            data = container.to_bytes()
        except ValueError as exc:
            failures += 1
            print(f"ERR  {path}: {exc}")
            continue
        name = path.stem if path.suffix == ".json" else path.name
        if not Path(name).suffix:
            name += EXTENSIONS[container.kind]
        target = _output_path(path, out_dir, name)
        target.write_bytes(data)
        print(f"OK   {path} -> {target}")
    return 1 if failures else 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("-v", "--verbose", action="store_true", help="Log diagnostics and registry use.")
    parser.add_argument("--registry", type=Path, help="Registry JSON to use instead of the bundled one.")
    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("to-text", help="Binary files to JSON text.")
    export.add_argument("paths", nargs="+", help="File paths or glob patterns.")
    export.add_argument("-o", "--output", type=Path, help="Output folder (default: next to input).")
    export.add_argument(
        "--compact",
        action="store_true",
        help="Leave out opaque fields that hold their registry default.",
    )

    build = sub.add_parser("from-text", help="JSON text to binary files.")
    build.add_argument("paths", nargs="+", help="File paths or glob patterns.")
    build.add_argument("-o", "--output", type=Path, help="Output folder (default: next to input).")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.ERROR,
        format="%(levelname)s %(name)s: %(message)s",
    )

    suffixes = (".json",) if args.command == "from-text" else SUFFIXES
    paths = collect_paths(args.paths, suffixes)
    if not paths:
        parser.error("No files matched the provided paths/patterns.")
    registry = Registry.from_path(args.registry) if args.registry else Registry.bundled()

    if args.command == "to-text":
        mode = Verbosity.COMPACT if args.compact else Verbosity.FULL
        return to_text_cmd(paths, args.output, mode, registry)
    return from_text_cmd(paths, args.output, registry)


if __name__ == "__main__":
    raise SystemExit(main())
