# SPDX-License-Identifier: AGPL-3.0-or-later
"""Command line report over a directory tree (or a single file)."""

from __future__ import annotations

import argparse
import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, TextIO

from .cascade import Classifier
from .instrumentation import ClassificationTrace, tsv_cell
from .markup import describe_markup, looks_like_markup, xml_namespaces
from .normalize import read_signature
from .oracle import Oracle
from .settings import DetectorSettings, get_settings

REPORT_COLUMNS = ("path", "old_ext", "new_ext", "media_type", "description", "markup", "namespaces")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="extdetect",
        description="Infer file extensions from file content",
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="File to inspect, or directory to walk (default: current directory)",
    )
    parser.add_argument("--out", help="Destination for the tab-delimited report (default: stdout)")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Append every decision to the debug log and write a per-extension summary",
    )
    parser.add_argument("--settings", type=Path, help="Settings YAML overriding the default location")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log rule hits to stderr")
    return parser.parse_args(argv)


def _expand_paths(root: Path) -> list[Path]:
    if root.is_dir():
        return [path for path in sorted(root.rglob("*")) if path.is_file()]
    return [root]


def _markup_cell(signature: Optional[str]) -> str:
    if not looks_like_markup(signature):
        return " "
    root = describe_markup(signature)
    if root is None:
        return "(no match)"
    text = f'("{root.tag}", "{root.attribute}")'
    return f"{text} manifest" if root.is_manifest else text


def _report_row(trace: ClassificationTrace, settings: DetectorSettings) -> str:
    signature = read_signature(
        trace.path,
        settings.classifier.markup_length,
        max_bytes=settings.classifier.read_limit_bytes,
    )
    namespaces = " ".join(xml_namespaces(signature))
    cells = (
        trace.path,
        trace.old_extension,
        trace.new_extension,
        trace.media_type,
        trace.description,
        _markup_cell(signature),
        namespaces,
    )
    return "\t".join(tsv_cell(cell) for cell in cells)


@contextmanager
def _open_output(target: Optional[str]) -> Iterator[TextIO]:
    if not target or target == "-":
        yield sys.stdout
        return
    path = Path(target).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yield handle


def _describe_file(classifier: Classifier, path: Path) -> List[str]:
    trace = classifier.explain(path)
    signature = read_signature(path, classifier.settings.classifier.signature_length)
    if signature is None:
        shown = "[binary]"
    else:
        shown = signature or "[empty]"
    return [
        f"path: {trace.path}",
        f"old_ext: {trace.old_extension}",
        f"new_ext: {trace.new_extension}",
        f"media_type: {trace.media_type}",
        f"description: {trace.description}",
        f"rule: {trace.rule}",
        f"signature: {shown}",
    ]


def _resolve_settings(args: argparse.Namespace) -> DetectorSettings:
    settings = get_settings(args.settings) if args.settings else get_settings()
    if args.debug:
        debug = settings.debug.model_copy(update={"enabled": True})
        settings = settings.model_copy(update={"debug": debug})
    return settings


def main(argv: list[str] | None = None, *, oracle: Optional[Oracle] = None) -> int:
    args = _parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    root = Path(args.path).expanduser()
    if not root.exists():
        print(f"Path '{root}' not found", file=sys.stderr)
        return 1

    settings = _resolve_settings(args)
    classifier = Classifier(oracle=oracle, settings=settings)

    if root.is_file() and not args.out:
        for line in _describe_file(classifier, root):
            print(line)
    else:
        with _open_output(args.out) as handle:
            handle.write("\t".join(REPORT_COLUMNS) + "\n")
            for path in _expand_paths(root):
                trace = classifier.explain(path)
                handle.write(_report_row(trace, settings) + "\n")

    classifier.recorder.close()
    if classifier.recorder.enabled:
        summary = classifier.recorder.write_summary()
        print(f"Decision log: {classifier.recorder.log_path}", file=sys.stderr)
        if summary is not None:
            print(f"Summary: {summary}", file=sys.stderr)
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
