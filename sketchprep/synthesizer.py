"""
Prototype synthesizer.

Every candidate without a visible declaration gets one prototype line,
preceded by a #line directive pointing at its definition so that a
diagnostic about the prototype is reported where the user wrote the function.

All prototypes share one anchor: the first non-trivial line of the original
source (after leading blank lines, comments and preprocessor directives).
If that line sits inside an open #if block the anchor moves up to the
block's opening directive.
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Tuple

from .classifier import FunctionCandidate
from .line_buffer import LineTaggedBuffer, line_directive

logger = logging.getLogger(__name__)

_DIRECTIVE_RE = re.compile(r"#\s*(\w+)")
_OPENING = {"if", "ifdef", "ifndef"}


@dataclass(frozen=True)
class PrototypeInsertion:
    line: int    # insert before this 1-indexed line of the original source
    text: str


def _skip_comments(text: str, in_comment: bool) -> Tuple[str, bool]:
    """Drop leading comments; returns (remaining text, still inside /* */)."""
    rest = text
    while True:
        if in_comment:
            end = rest.find("*/")
            if end < 0:
                return "", True
            rest = rest[end + 2:].lstrip()
            in_comment = False
        if rest.startswith("//"):
            return "", False
        if rest.startswith("/*"):
            rest = rest[2:]
            in_comment = True
            continue
        return rest, False


def find_insertion_line(original: LineTaggedBuffer) -> int:
    """Line before which the prototype block goes."""
    in_comment = False
    continuation = False
    depth = 0
    outer_if = 0
    for number, text in enumerate(original.texts, start=1):
        if continuation:
            continuation = text.rstrip().endswith("\\")
            continue
        stripped, in_comment = _skip_comments(text.strip(), in_comment)
        if not stripped:
            continue
        if stripped.startswith("#"):
            m = _DIRECTIVE_RE.match(stripped)
            word = m.group(1) if m else ""
            if word in _OPENING:
                depth += 1
                if depth == 1:
                    outer_if = number
            elif word == "endif" and depth > 0:
                depth -= 1
            continuation = stripped.endswith("\\")
            continue
        return outer_if if depth > 0 else number
    return len(original) + 1


def synthesize_prototypes(candidates: List[FunctionCandidate],
                          original: LineTaggedBuffer) -> List[PrototypeInsertion]:
    pending = [c for c in candidates if not c.has_declaration]
    if not pending:
        logger.info("synthesizer: nothing to declare")
        return []

    anchor = find_insertion_line(original)
    insertions = []
    for candidate in pending:
        text = line_directive(candidate.line, candidate.file) + "\n" + candidate.prototype_text()
        logger.debug("prototype for %s: %s", candidate.name, candidate.prototype_text())
        insertions.append(PrototypeInsertion(anchor, text))

    logger.info("synthesizer: %d prototype(s) anchored before line %d", len(insertions), anchor)
    return insertions
