"""
Sketch-origin filter.

Preprocessor output interleaves lines from system/library headers with lines
from the user's sketch.  The tag scanner must only see the sketch lines, but
every downstream line number refers to the expanded buffer, so nothing may be
deleted: foreign lines and marker lines are replaced by empty placeholders.

    len(filtered) == len(expanded)      always
"""

import logging
from typing import Dict, Iterable, List, Optional

from .line_buffer import LineTaggedBuffer, SourceLine, same_file

logger = logging.getLogger(__name__)


class SketchFiles:
    """The set of files whose lines count as the user's own."""

    def __init__(self, files: Iterable[str]):
        self.files: List[str] = []
        for f in files:
            if f and f not in self.files:
                self.files.append(f)

    def __contains__(self, path: str) -> bool:
        return any(same_file(path, f) for f in self.files)

    def __iter__(self):
        return iter(self.files)

    def __repr__(self) -> str:
        return f"SketchFiles({self.files!r})"


def collect_sketch_files(original: LineTaggedBuffer, main_file: str) -> SketchFiles:
    """Main file plus every file a #line marker in the original source names."""
    return SketchFiles([main_file] + original.origin_files())


def tag_expanded(text: str, main_file: str, sketch_files: SketchFiles,
                 aliases: Optional[Dict[str, str]] = None) -> LineTaggedBuffer:
    """Attach origins to preprocessor output, marking header lines foreign."""
    return LineTaggedBuffer.from_text(
        text,
        default_file=main_file,
        is_sketch_file=lambda path: path in sketch_files,
        aliases=aliases,
    )


def filter_sketch_source(expanded: LineTaggedBuffer) -> LineTaggedBuffer:
    """Blank every line that is not sketch content, keeping the line count."""
    kept = 0
    out: List[SourceLine] = []
    for sl in expanded:
        if sl.marker or sl.foreign:
            out.append(SourceLine("", sl.origin, foreign=sl.foreign, marker=sl.marker))
        else:
            out.append(sl)
            kept += 1

    logger.info(
        "origin filter: kept %d of %d expanded lines as sketch content",
        kept, len(expanded),
    )
    return LineTaggedBuffer(out, trailing_newline=expanded.trailing_newline)
