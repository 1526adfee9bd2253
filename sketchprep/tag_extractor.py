"""
Tag extractor invocation and ctags record parsing.

The scanner runs over the filtered buffer and writes one record per symbol:

    name<TAB>file<TAB>/^code$/;"<TAB>kind:function<TAB>line:12<TAB>signature:(int x)<TAB>returntype:void

Records are untrusted hints.  A record that cannot be parsed is logged at
WARNING and skipped; the scanner occasionally emits partial records for
template-heavy code.
"""

import os
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import ParseError
from .line_buffer import LineTaggedBuffer
from .tools import ToolRunner, run_tool

logger = logging.getLogger(__name__)

TAGS_STAGE = "ctags"

KIND_FUNCTION = "function"
KIND_PROTOTYPE = "prototype"

# Single-letter kinds written when the long kind field is disabled
_SHORT_KINDS = {
    "f": KIND_FUNCTION,
    "p": KIND_PROTOTYPE,
    "s": "struct",
    "c": "class",
    "u": "union",
    "n": "namespace",
    "v": "variable",
    "m": "member",
    "t": "typedef",
    "g": "enum",
    "e": "enumerator",
    "d": "macro",
}

_SCOPE_FIELDS = ("class", "struct", "union", "namespace")


@dataclass(frozen=True)
class RawTag:
    kind: str
    name: str
    line: int            # 1-indexed line in the filtered buffer
    signature: str = ""
    scope: str = ""      # "" for top-level symbols
    return_type: str = ""
    code: str = ""       # the source line as the scanner saw it
    linkage: str = ""    # "C" inside extern "C" blocks
    raw: str = ""


def _unescape_pattern(pattern: str) -> str:
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern) and pattern[i + 1] in "\\/":
            out.append(pattern[i + 1])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def escape_pattern(code: str) -> str:
    """Inverse of the ctags search-pattern escaping."""
    return code.replace("\\", "\\\\").replace("/", "\\/")


def parse_tag_record(row: str) -> RawTag:
    """Parse one ctags record.  Raises ParseError on malformed input."""
    head, sep, tail = row.partition(';"\t')
    if not sep:
        raise ParseError(row, "missing ';\"' field separator")

    parts = head.split("\t", 2)
    if len(parts) < 3 or not parts[0]:
        raise ParseError(row, "missing name, file or address")
    name, _filename, address = parts

    code = ""
    if address.startswith("/^"):
        body = address[2:]
        if body.endswith("$/"):
            body = body[:-2]
        elif body.endswith("/"):
            body = body[:-1]
        code = _unescape_pattern(body)

    fields: Dict[str, str] = {}
    kind = ""
    for part in tail.split("\t"):
        if not part:
            continue
        key, colon, value = part.partition(":")
        if not colon:
            # bare kind letter / name
            if not kind:
                kind = _SHORT_KINDS.get(part, part)
            continue
        fields[key] = value.strip()

    kind = fields.get("kind", kind)
    kind = _SHORT_KINDS.get(kind, kind)
    if not kind:
        raise ParseError(row, "missing kind")

    line_text = fields.get("line")
    if line_text is None and address.rstrip(";").isdigit():
        line_text = address.rstrip(";")
    try:
        line = int(line_text)
    except (TypeError, ValueError):
        raise ParseError(row, "missing or invalid line number")

    scope = ""
    for key in _SCOPE_FIELDS:
        if fields.get(key):
            scope = fields[key]
            break
    if not scope and fields.get("scope"):
        # universal-ctags: scope:class:Foo
        scope = fields["scope"].split(":", 1)[-1]

    return_type = fields.get("returntype", "")
    if not return_type and fields.get("typeref", "").startswith("typename:"):
        return_type = fields["typeref"][len("typename:"):]

    return RawTag(
        kind=kind,
        name=name,
        line=line,
        signature=fields.get("signature", ""),
        scope=scope,
        return_type=return_type,
        code=code,
        linkage=fields.get("linkage", ""),
        raw=row,
    )


def parse_tags_output(text: str) -> List[RawTag]:
    """Parse a whole tag file, skipping pseudo-tags and malformed records."""
    tags: List[RawTag] = []
    skipped = 0
    for row in text.splitlines():
        if not row.strip() or row.startswith("!_TAG_"):
            continue
        try:
            tags.append(parse_tag_record(row))
        except ParseError as e:
            skipped += 1
            logger.warning("Skipping malformed tag record: %s", e)
    if skipped:
        logger.info("tags: %d record(s) skipped", skipped)
    return tags


# ═══════════════════════════════════════════════════════════════════════
#  Scanner invocation
# ═══════════════════════════════════════════════════════════════════════

def run_tag_extractor(runner: ToolRunner, settings, filtered: LineTaggedBuffer,
                      scratch_dir: str) -> List[RawTag]:
    """Write the filtered buffer, run the scanner, and parse its records."""
    target_path = os.path.join(scratch_dir, settings.ctags_target_file)
    output_path = os.path.join(scratch_dir, settings.ctags_output_file)
    with open(target_path, "w", encoding="utf-8") as f:
        f.write(filtered.text)

    args = list(settings.ctags_flags) + ["-f", output_path, target_path]
    result = run_tool(runner, TAGS_STAGE, settings.ctags_command, args, scratch_dir)

    text: Optional[str] = None
    if os.path.isfile(output_path):
        with open(output_path, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()
    if text is None:
        text = result.stdout

    tags = parse_tags_output(text)
    logger.info("tags: %d record(s) from %s", len(tags), settings.ctags_command)
    return tags
