"""
Tag classifier — decides which scanner tags are top-level function
definitions that need a synthesized prototype.

Rules, applied in order:
  1. only function / prototype tags are considered
  2. members (non-empty scope) and out-of-line methods are skipped
  3. functions named like a class/struct/union are skipped
  4. tags that do not map to a sketch line are skipped
  5. a top-level prototype with the same name and arity marks the
     definition as already declared
  6. template lists, default values, modifiers, return types and the
     declarator suffix (noexcept, trailing return type) are recovered
     from the filtered source line where possible
  7. deduced return types without a trailing return type cannot be
     declared ahead and are skipped with a warning

When in doubt the candidate is kept: an extra prototype is harmless, a
missing one breaks the build.
"""

import re
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from .cpp_text import (
    extract_template, is_balanced_signature, matching_paren, param_count,
    split_modifiers, squash, strip_comments, strip_defaults, template_prefix_length,
)
from .line_buffer import LineTaggedBuffer
from .tag_extractor import KIND_FUNCTION, KIND_PROTOTYPE, RawTag

logger = logging.getLogger(__name__)

_TYPE_KINDS = {"class", "struct", "union"}
_NAME_RE = re.compile(r"^(?:[A-Za-z_]\w*|operator\s*\S+)$")
_TEMPLATE_LOOKBACK = 5
_PTR_SUFFIX_RE = re.compile(r"^(.*?)\s*([*&][*&\s]*)$")
_DEDUCED_TYPES = {"auto", "decltype(auto)"}
_SUFFIX_END_RE = re.compile(r"[{;=]|\btry\b")


@dataclass(frozen=True)
class FunctionCandidate:
    name: str
    return_type: str
    parameters: str                 # prototype form, defaults stripped
    definition_parameters: str      # as written in the definition
    file: str
    line: int                       # line of the definition in ``file``
    template_params: str = ""
    modifiers: str = ""             # 'static', 'inline', 'extern "C"'
    suffix: str = ""                # exception spec or trailing return type
    has_declaration: bool = False

    def prototype_text(self) -> str:
        # pointer and reference marks bind to the name: "int &r()"
        m = _PTR_SUFFIX_RE.match(self.return_type)
        ret, marks = (m.group(1), "".join(m.group(2).split())) if m else (self.return_type, "")
        head = " ".join(p for p in (self.template_params, self.modifiers, ret) if p)
        tail = " " + self.suffix if self.suffix else ""
        return f"{head} {marks}{self.name}{self.parameters}{tail};"


def _name_position(line: str, name: str) -> Optional[re.Match]:
    return re.search(r"(?<![\w~])" + re.escape(name) + r"\s*\(", line)


def _decl_prefix(line: str, name: str) -> Optional[str]:
    """Text in front of the function name on its definition line."""
    m = _name_position(line, name)
    if not m:
        return None
    prefix = strip_comments(line[:m.start()])
    # drop anything that ended before this declaration on the same line
    cut = max(prefix.rfind(";"), prefix.rfind("}"), prefix.rfind("{"))
    if cut >= 0:
        prefix = prefix[cut + 1:]
    n = template_prefix_length(prefix)
    return prefix[n:]


def _template_params(buffer: LineTaggedBuffer, tag: RawTag, code: str) -> str:
    """``template <...>`` clause of a definition, on its line or just above."""
    inline = extract_template(strip_comments(code))
    if inline:
        return inline
    collected: List[str] = []
    n = tag.line - 1
    while n >= 1 and tag.line - n <= _TEMPLATE_LOOKBACK:
        text = strip_comments(buffer.line_text(n)).strip()
        if not text or text.startswith("#"):
            break
        collected.insert(0, text)
        if text.startswith("template"):
            return extract_template(" ".join(collected))
        if text.endswith((";", "{", "}")):
            break
        n -= 1
    return ""


def _previous_line_type(buffer: LineTaggedBuffer, line: int) -> str:
    """Return type written alone on the line above (``int\\nfoo() {``)."""
    if line <= 1:
        return ""
    text = strip_comments(buffer.line_text(line - 1)).strip()
    if not text or text.startswith("#") or any(c in text for c in ";{}()"):
        return ""
    return text[template_prefix_length(text):].strip()


def _signature_from_code(code: str, name: str) -> str:
    m = _name_position(code, name)
    if not m:
        return ""
    open_at = code.index("(", m.start())
    close_at = matching_paren(code, open_at)
    return code[open_at:close_at + 1] if close_at > 0 else ""


def _declarator_suffix(code: str, name: str) -> str:
    """Text between the parameter list and the body: ``noexcept``, ``-> int``."""
    m = _name_position(code, name)
    if not m:
        return ""
    open_at = code.index("(", m.start())
    close_at = matching_paren(code, open_at)
    if close_at < 0:
        return ""
    rest = strip_comments(code[close_at + 1:])
    end = _SUFFIX_END_RE.search(rest)
    if end:
        rest = rest[:end.start()]
    return squash(rest)


def _declared_arities(tags: List[RawTag]) -> Dict[str, Set[int]]:
    declared: Dict[str, Set[int]] = {}
    for tag in tags:
        if tag.kind != KIND_PROTOTYPE or tag.scope:
            continue
        if not is_balanced_signature(tag.signature):
            continue
        declared.setdefault(tag.name, set()).add(param_count(tag.signature))
    return declared


def classify_tags(tags: List[RawTag], filtered: LineTaggedBuffer) -> List[FunctionCandidate]:
    """Turn raw tags into FunctionCandidates in order of first appearance."""
    type_names = {t.name for t in tags if t.kind in _TYPE_KINDS}
    declared = _declared_arities(tags)

    candidates: List[FunctionCandidate] = []
    seen: Set[str] = set()
    for tag in sorted(tags, key=lambda t: t.line):
        if tag.kind != KIND_FUNCTION:
            continue
        if tag.scope:
            logger.debug("skip %s: member of %s", tag.name, tag.scope)
            continue
        if tag.name in type_names:
            logger.debug("skip %s: same name as a class/struct", tag.name)
            continue
        if not _NAME_RE.match(tag.name):
            logger.warning("skip %r at line %d: not a function name", tag.name, tag.line)
            continue

        source_line = filtered.line(tag.line) if 1 <= tag.line <= len(filtered) else None
        if source_line is None or source_line.origin is None or source_line.foreign:
            logger.debug("skip %s: line %d is not sketch content", tag.name, tag.line)
            continue
        code = source_line.text or tag.code

        prefix = _decl_prefix(code, tag.name)
        if prefix is not None and prefix.rstrip().endswith("::"):
            logger.debug("skip %s: qualified (out-of-line member)", tag.name)
            continue

        mods, return_type = split_modifiers(prefix or "")
        if not return_type:
            mods_fallback, return_type = split_modifiers(tag.return_type)
            mods = mods or mods_fallback
        if not return_type:
            return_type = _previous_line_type(filtered, tag.line)
        if not return_type:
            logger.warning(
                "cannot determine return type of %s at line %d; no prototype generated",
                tag.name, tag.line,
            )
            continue

        if tag.linkage == "C" and 'extern "C"' not in mods:
            mods.insert(0, 'extern "C"')

        suffix = _declarator_suffix(code, tag.name)
        if return_type in _DEDUCED_TYPES and not suffix.startswith("->"):
            logger.warning(
                "%s at line %d has a deduced return type; no prototype generated",
                tag.name, tag.line,
            )
            continue

        signature = tag.signature or _signature_from_code(code, tag.name)
        if not is_balanced_signature(signature):
            logger.warning(
                "unbalanced signature for %s at line %d: %r; no prototype generated",
                tag.name, tag.line, signature,
            )
            continue
        parameters, had_defaults = strip_defaults(signature)

        candidate = FunctionCandidate(
            name=tag.name,
            return_type=return_type,
            parameters=parameters,
            definition_parameters=squash(signature),
            file=source_line.origin.file,
            line=source_line.origin.line,
            template_params=_template_params(filtered, tag, code),
            modifiers=" ".join(mods),
            suffix=suffix,
            has_declaration=param_count(parameters) in declared.get(tag.name, set()),
        )
        key = candidate.prototype_text()
        if key in seen:
            continue
        seen.add(key)
        if had_defaults:
            logger.debug("%s: default values stripped for prototype", tag.name)
        candidates.append(candidate)

    logger.info(
        "classifier: %d function candidate(s), %d already declared",
        len(candidates), sum(1 for c in candidates if c.has_declaration),
    )
    return candidates
