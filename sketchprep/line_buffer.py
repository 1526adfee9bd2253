"""
Line-tagged source buffers.

A LineTaggedBuffer is a list of physical lines, each carrying the origin
(file, 1-based line) it came from.  Origins are computed by a small state
machine that reacts only to line-marker directives:

    # 12 "sketch.ino" 2        (GCC -E output)
    #line 12 "sketch.ino"      (pcpp output, and user-written #line)
    #line 12                   (keeps the current file)

States are UNKNOWN (no marker seen yet), IN_SKETCH and IN_FOREIGN.  Lines
seen in UNKNOWN state are attributed to the default file with their physical
numbering.  Marker lines themselves carry no origin.
"""

import re
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

_MARKER_RE = re.compile(
    r'^\s*#\s*(?:line\s+)?(\d+)(?:\s+"((?:[^"\\]|\\.)*)")?(?:\s+\d+)*\s*$'
)
_ESCAPE_RE = re.compile(r'\\(.)')


def _norm_path(p: str) -> str:
    """Normalise separators for comparison."""
    if not p:
        return ""
    return p.replace("\\", "/").rstrip("/")


def same_file(a: str, b: str) -> bool:
    """True if two tool-reported paths name the same file.

    Tools report paths the way they were passed (relative, absolute, or
    joined with an include dir), so a suffix match on a path boundary counts.
    """
    na, nb = _norm_path(a), _norm_path(b)
    if not na or not nb:
        return False
    if na == nb:
        return True
    return na.endswith("/" + nb) or nb.endswith("/" + na)


def parse_line_marker(text: str) -> Optional[Tuple[int, Optional[str]]]:
    """Return (line, file-or-None) for a line-marker directive, else None."""
    m = _MARKER_RE.match(text)
    if not m:
        return None
    filename = m.group(2)
    if filename is not None:
        filename = _ESCAPE_RE.sub(r"\1", filename)
    return int(m.group(1)), filename


def quote_cpp_string(s: str) -> str:
    """Quote a path for use inside a #line directive."""
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'


def line_directive(line: int, filename: str) -> str:
    return f"#line {line} {quote_cpp_string(filename)}"


def split_lines(text: str) -> Tuple[List[str], bool]:
    """Split on newlines only; returns (lines, had_trailing_newline)."""
    if not text:
        return [], False
    trailing = text.endswith("\n")
    body = text[:-1] if trailing else text
    return [ln[:-1] if ln.endswith("\r") else ln for ln in body.split("\n")], trailing


# ═══════════════════════════════════════════════════════════════════════
#  Data types
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Origin:
    file: str
    line: int


@dataclass(frozen=True)
class SourceLine:
    text: str
    origin: Optional[Origin]   # None for marker lines
    foreign: bool = False      # came from an expanded header
    marker: bool = False


class OriginState(Enum):
    UNKNOWN = "unknown-origin"
    IN_SKETCH = "in-sketch"
    IN_FOREIGN = "in-foreign"


# ═══════════════════════════════════════════════════════════════════════
#  Origin state machine
# ═══════════════════════════════════════════════════════════════════════

class OriginTracker:
    """Tracks the current origin file/line while scanning a buffer."""

    def __init__(
        self,
        default_file: str,
        is_sketch_file: Optional[Callable[[str], bool]] = None,
        aliases: Optional[Dict[str, str]] = None,
    ):
        self.default_file = default_file
        self.is_sketch_file = is_sketch_file or (lambda _path: True)
        self.aliases = aliases or {}
        self.state = OriginState.UNKNOWN
        self.current_file = default_file
        self.next_line = 1

    def _resolve(self, filename: str) -> str:
        for alias, target in self.aliases.items():
            if same_file(filename, alias):
                return target
        return filename

    def feed(self, text: str) -> SourceLine:
        marker = parse_line_marker(text)
        if marker is not None:
            line, filename = marker
            if filename is not None:
                self.current_file = self._resolve(filename)
                self.state = self._state_for(self.current_file)
            elif self.state is OriginState.UNKNOWN:
                self.state = self._state_for(self.current_file)
            self.next_line = line
            return SourceLine(text, None, marker=True)

        origin = Origin(self.current_file, self.next_line)
        self.next_line += 1
        return SourceLine(text, origin, foreign=self.state is OriginState.IN_FOREIGN)

    def _state_for(self, filename: str) -> OriginState:
        if self.is_sketch_file(filename):
            return OriginState.IN_SKETCH
        return OriginState.IN_FOREIGN


# ═══════════════════════════════════════════════════════════════════════
#  Buffer
# ═══════════════════════════════════════════════════════════════════════

class LineTaggedBuffer:
    """Physical lines of a text plus the origin of each line (1-indexed API)."""

    def __init__(self, lines: Iterable[SourceLine], trailing_newline: bool = True):
        self._lines: List[SourceLine] = list(lines)
        self.trailing_newline = trailing_newline

    @classmethod
    def from_text(
        cls,
        text: str,
        default_file: str,
        is_sketch_file: Optional[Callable[[str], bool]] = None,
        aliases: Optional[Dict[str, str]] = None,
    ) -> "LineTaggedBuffer":
        raw_lines, trailing = split_lines(text)
        tracker = OriginTracker(default_file, is_sketch_file, aliases)
        return cls((tracker.feed(t) for t in raw_lines), trailing_newline=trailing)

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[SourceLine]:
        return iter(self._lines)

    def line(self, number: int) -> SourceLine:
        if number < 1 or number > len(self._lines):
            raise IndexError(f"line {number} outside buffer of {len(self._lines)} lines")
        return self._lines[number - 1]

    def line_text(self, number: int) -> str:
        return self.line(number).text

    def origin_of(self, number: int) -> Optional[Origin]:
        if number < 1 or number > len(self._lines):
            return None
        return self._lines[number - 1].origin

    def find_line(self, origin: Origin) -> Optional[int]:
        """Physical line holding the given origin, if any."""
        for idx, sl in enumerate(self._lines):
            if sl.origin is not None and sl.origin.line == origin.line \
                    and same_file(sl.origin.file, origin.file):
                return idx + 1
        return None

    def origin_files(self) -> List[str]:
        """Every file named by an origin in this buffer, in first-seen order."""
        seen: List[str] = []
        for sl in self._lines:
            if sl.origin is not None and sl.origin.file not in seen:
                seen.append(sl.origin.file)
        return seen

    @property
    def texts(self) -> List[str]:
        return [sl.text for sl in self._lines]

    @property
    def text(self) -> str:
        body = "\n".join(sl.text for sl in self._lines)
        if self._lines and self.trailing_newline:
            body += "\n"
        return body
