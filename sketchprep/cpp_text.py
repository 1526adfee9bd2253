"""
Small text helpers for C++ declarations: parameter splitting, default value
stripping, template prefixes and declaration modifiers.

These work on single signatures, not whole files.  Brackets and string or
character literals are respected; nothing here tries to be a grammar.
"""

import re
from typing import List, Optional, Tuple

_OPEN = {"(": ")", "[": "]", "{": "}"}
_CLOSE = {")", "]", "}"}
_COMMENT_RE = re.compile(r"/\*.*?\*/|//.*$")
_MODIFIER_RE = re.compile(r'^\s*(static\b|inline\b|extern\s*"C"|extern\b)\s*')


def squash(text: str) -> str:
    return " ".join(text.split())


def strip_comments(text: str) -> str:
    return _COMMENT_RE.sub(" ", text)


def matching_paren(text: str, start: int) -> int:
    """Index of the ')' closing the '(' at ``start``, or -1."""
    depth = 0
    quote = None
    i = start
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def is_balanced_signature(signature: str) -> bool:
    s = signature.strip()
    return s.startswith("(") and matching_paren(s, 0) == len(s) - 1


def split_params(signature: str) -> List[Tuple[str, Optional[int]]]:
    """Split "(a, b = f(1, 2))" into [(param, index-of-default-'=' or None)].

    Angle brackets only nest inside the declared type.  Inside a default value
    a '<' counts as a bracket when it directly follows an identifier
    (``std::array<int, 2>()``), not when it is a comparison (``a < b``).
    """
    s = signature.strip()
    if s.startswith("(") and s.endswith(")"):
        s = s[1:-1]
    params: List[Tuple[str, Optional[int]]] = []
    if not s.strip():
        return params

    depth = 0
    angle = 0
    quote = None
    start = 0
    default_at: Optional[int] = None
    i = 0
    while i < len(s):
        ch = s[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
        elif ch in _OPEN:
            depth += 1
        elif ch in _CLOSE:
            depth -= 1
        elif ch == "<":
            prev = s[i - 1] if i > 0 else " "
            nxt = s[i + 1] if i + 1 < len(s) else " "
            if default_at is None or ((prev.isalnum() or prev == "_") and nxt not in " =<"):
                angle += 1
        elif ch == ">" and angle > 0 and s[i - 1] != "-":
            angle -= 1
        elif ch == "=" and depth == 0 and angle == 0 and default_at is None:
            prev = s[i - 1] if i > 0 else ""
            nxt = s[i + 1] if i + 1 < len(s) else ""
            if nxt != "=" and prev not in "=!<>":
                default_at = i - start
        elif ch == "," and depth == 0 and angle == 0:
            params.append((s[start:i], default_at))
            start = i + 1
            default_at = None
        i += 1
    params.append((s[start:], default_at))
    return params


def strip_defaults(signature: str) -> Tuple[str, bool]:
    """Return (signature without default values, whether anything was removed)."""
    parts = split_params(signature)
    if not any(d is not None for _, d in parts):
        return squash(signature), False
    cleaned = []
    for text, default_at in parts:
        if default_at is not None:
            text = text[:default_at]
        cleaned.append(squash(text))
    return "(" + ", ".join(cleaned) + ")", True


def param_count(signature: str) -> int:
    parts = [squash(p) for p, _ in split_params(signature)]
    if len(parts) == 1 and parts[0] in ("", "void"):
        return 0
    return len(parts)


def template_prefix_length(text: str) -> int:
    """Length of a leading ``template <...>`` clause in ``text``, or 0."""
    m = re.match(r"\s*template\s*<", text)
    if not m:
        return 0
    depth = 0
    for i in range(m.end() - 1, len(text)):
        if text[i] == "<":
            depth += 1
        elif text[i] == ">":
            depth -= 1
            if depth == 0:
                return i + 1
    return 0


def extract_template(text: str) -> str:
    n = template_prefix_length(text)
    return squash(text[:n]) if n else ""


def split_modifiers(decl_prefix: str) -> Tuple[List[str], str]:
    """Split leading storage/linkage words off a return type."""
    mods: List[str] = []
    rest = decl_prefix
    while True:
        m = _MODIFIER_RE.match(rest)
        if not m:
            break
        word = m.group(1)
        mods.append('extern "C"' if word.startswith("extern") and '"C"' in word else word)
        rest = rest[m.end():]
    return mods, squash(rest)
