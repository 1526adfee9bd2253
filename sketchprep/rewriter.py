import logging
from typing import Dict, List, Optional

from .errors import RewriteError
from .line_buffer import LineTaggedBuffer, line_directive
from .synthesizer import PrototypeInsertion

logger = logging.getLogger(__name__)


def _reanchor(original: LineTaggedBuffer, line: int) -> Optional[str]:
    """#line directive restoring the numbering of ``line`` after a block."""
    if line > len(original):
        return None
    origin = original.origin_of(line)
    if origin is None:
        # the line is itself a line marker and re-anchors on its own
        return None
    return line_directive(origin.line, origin.file)


def rewrite_source(original: LineTaggedBuffer, insertions: List[PrototypeInsertion]) -> str:
    """Splice all insertions into the original source as one batch.

    Blocks are applied bottom-up so earlier line numbers stay valid, and each
    block is followed by a #line directive so downstream diagnostics keep
    reporting the user's original line numbers.
    """
    if not insertions:
        return original.text

    total = len(original)
    for ins in insertions:
        if ins.line < 1 or ins.line > total + 1:
            raise RewriteError(
                f"insertion line {ins.line} outside source of {total} lines"
            )

    groups: Dict[int, List[str]] = {}
    for ins in insertions:
        groups.setdefault(ins.line, []).append(ins.text)

    lines = original.texts
    for line in sorted(groups, reverse=True):
        block: List[str] = []
        for text in groups[line]:
            block.extend(text.split("\n"))
        directive = _reanchor(original, line)
        if directive is not None:
            block.append(directive)
        lines[line - 1:line - 1] = block
        logger.debug("rewriter: %d line(s) inserted before line %d", len(block), line)

    text = "\n".join(lines)
    if original.trailing_newline or not len(original):
        text += "\n"
    logger.info("rewriter: %d insertion(s) applied", len(insertions))
    return text
