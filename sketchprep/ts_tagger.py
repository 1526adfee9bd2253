"""
Tree-sitter tag scanner — an in-process stand-in for ctags.

Parses the filtered sketch with the tree-sitter C++ grammar and writes records
in the same format ctags uses, so the rest of the pipeline cannot tell the two
backends apart:

  • function definitions         kind:function   (+ signature, returntype)
  • function declarations        kind:prototype
  • class / struct / union       kind:class|struct|union
  • namespaces                   kind:namespace

Symbols nested in a class, struct or namespace carry a scope field
(``class:Foo``).  Out-of-line methods (``void Foo::run()``) are scoped by their
qualifier.  Functions inside an ``extern "C" { }`` block get ``linkage:C``.
"""

import os
import logging
from typing import List, Optional, Tuple

import tree_sitter_cpp as tscpp
from tree_sitter import Language, Parser, Node

from .tag_extractor import KIND_FUNCTION, KIND_PROTOTYPE, escape_pattern
from .tools import ToolResult, ToolRunner

logger = logging.getLogger(__name__)

CPP_LANGUAGE = Language(tscpp.language())
_parser = Parser(CPP_LANGUAGE)

_CLASS_KINDS = {
    "class_specifier": "class",
    "struct_specifier": "struct",
    "union_specifier": "union",
}

_PREPROC_CONTAINERS = {
    "preproc_ifdef", "preproc_if", "preproc_elif",
    "preproc_else", "preproc_elifdef",
}

_DECLARATOR_WRAPPERS = {
    "pointer_declarator", "reference_declarator",
    "parenthesized_declarator", "attributed_declarator",
}

Scope = Tuple[Tuple[str, str], ...]   # ((kind, name), ...) outermost first


def _node_text(node: Node, source: bytes) -> str:
    return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def _squash(text: str) -> str:
    return " ".join(text.split())


def _function_declarator(node: Optional[Node]) -> Optional[Node]:
    """Unwrap pointer/reference declarators down to the function declarator."""
    current = node
    while current is not None:
        if current.type == "function_declarator":
            return current
        if current.type not in _DECLARATOR_WRAPPERS:
            return None
        inner = current.child_by_field_name("declarator")
        if inner is None:
            inner = next(
                (c for c in current.named_children if c.type.endswith("declarator")),
                None,
            )
        current = inner
    return None


class TagWriter:
    """Collects ctags-format records for one parsed file."""

    def __init__(self, source: bytes, filename: str):
        self.source = source
        self.filename = filename
        self.lines = source.decode("utf-8", errors="replace").split("\n")
        self.records: List[str] = []

    def code_at(self, row: int) -> str:
        if 0 <= row < len(self.lines):
            return self.lines[row].rstrip("\r")
        return ""

    def emit(self, name: str, kind: str, row: int, scope: Scope,
             signature: str = "", returntype: str = "", linkage: str = ""):
        fields = [f"kind:{kind}", f"line:{row + 1}"]
        if signature:
            fields.append(f"signature:{signature}")
        if returntype:
            fields.append(f"returntype:{returntype}")
        if scope:
            fields.append(f"{scope[-1][0]}:{'::'.join(n for _, n in scope)}")
        if linkage:
            fields.append(f"linkage:{linkage}")
        address = f"/^{escape_pattern(self.code_at(row))}$/"
        self.records.append("\t".join([name, self.filename, address + ';"'] + fields))

    # ────────────────────────────────────────────────────────────────
    #  AST walk
    # ────────────────────────────────────────────────────────────────

    def visit_children(self, node: Node, scope: Scope, linkage: str = ""):
        for child in node.children:
            self.visit(child, scope, linkage)

    def visit(self, node: Node, scope: Scope, linkage: str = ""):
        t = node.type
        if t == "function_definition":
            self._function(node, scope, KIND_FUNCTION, linkage)
        elif t in ("declaration", "field_declaration"):
            self._declaration(node, scope, linkage)
        elif t == "template_declaration":
            for child in node.named_children:
                if child.type != "template_parameter_list":
                    self.visit(child, scope, linkage)
        elif t in _CLASS_KINDS:
            self._class(node, scope)
        elif t == "namespace_definition":
            name_node = node.child_by_field_name("name")
            name = _node_text(name_node, self.source) if name_node else "__anon"
            self.emit(name, "namespace", node.start_point[0], scope)
            body = node.child_by_field_name("body")
            if body is not None:
                self.visit_children(body, scope + (("namespace", name),))
        elif t == "linkage_specification":
            value = node.child_by_field_name("value")
            lang = _node_text(value, self.source).strip('"') if value else ""
            body = node.child_by_field_name("body")
            if body is None:
                return
            if body.type == "declaration_list":
                self.visit_children(body, scope, lang)
            else:
                self.visit(body, scope, lang)
        elif t in _PREPROC_CONTAINERS or t in ("translation_unit", "declaration_list", "ERROR"):
            self.visit_children(node, scope, linkage)

    def _function(self, node: Node, scope: Scope, kind: str, linkage: str,
                  declarator: Optional[Node] = None):
        fdecl = _function_declarator(declarator or node.child_by_field_name("declarator"))
        if fdecl is None:
            return
        name_node = fdecl.child_by_field_name("declarator")
        params = fdecl.child_by_field_name("parameters")
        if name_node is None or params is None:
            return

        full_name = _node_text(name_node, self.source)
        if name_node.type == "template_function":
            full_name = full_name.split("<", 1)[0]
        tag_scope = scope
        name = full_name
        if "::" in full_name:
            qualifier, name = full_name.rsplit("::", 1)
            tag_scope = scope + (("class", qualifier),)

        returntype = _squash(
            self.source[node.start_byte:name_node.start_byte].decode("utf-8", errors="replace")
        )
        self.emit(
            name, kind, node.start_point[0], tag_scope,
            signature=_squash(_node_text(params, self.source)),
            returntype=returntype,
            linkage=linkage,
        )

    def _declaration(self, node: Node, scope: Scope, linkage: str):
        type_node = node.child_by_field_name("type")
        if type_node is not None and type_node.type in _CLASS_KINDS:
            self._class(type_node, scope)
        for declarator in node.children_by_field_name("declarator"):
            if _function_declarator(declarator) is not None:
                self._function(node, scope, KIND_PROTOTYPE, linkage, declarator=declarator)

    def _class(self, node: Node, scope: Scope):
        body = node.child_by_field_name("body")
        if body is None:
            # forward declaration or elaborated type specifier
            return
        kind = _CLASS_KINDS[node.type]
        name_node = node.child_by_field_name("name")
        name = _node_text(name_node, self.source) if name_node else "__anon"
        if name_node is not None:
            self.emit(name, kind, node.start_point[0], scope)
        self.visit_children(body, scope + ((kind, name),))


def scan_source(source: bytes, filename: str) -> List[str]:
    """Return ctags-format records for a C++ source buffer."""
    tree = _parser.parse(source)
    writer = TagWriter(source, filename)
    writer.visit(tree.root_node, ())
    return writer.records


class TreeSitterTagRunner(ToolRunner):
    """Tag backend that accepts a ctags command line (``-f OUT ... INPUT``)."""

    def run(self, tool: str, args: List[str], workdir: str) -> ToolResult:
        output = None
        inputs: List[str] = []
        i = 0
        while i < len(args):
            if args[i] == "-f" and i + 1 < len(args):
                output = args[i + 1]
                i += 2
                continue
            if not args[i].startswith("-"):
                inputs.append(args[i])
            i += 1
        if not inputs:
            return ToolResult(1, "", "tree-sitter tagger: no input file")

        records: List[str] = []
        for path in inputs:
            full_path = os.path.join(workdir, path)
            try:
                with open(full_path, "rb") as f:
                    source = f.read()
            except OSError as e:
                return ToolResult(1, "", f"tree-sitter tagger: {e}")
            records.extend(scan_source(source, path))

        text = "".join(r + "\n" for r in records)
        logger.debug("tree-sitter tagger: %d record(s)", len(records))
        if output is None or output == "-":
            return ToolResult(0, text, "")
        with open(os.path.join(workdir, output), "w", encoding="utf-8") as f:
            f.write(text)
        return ToolResult(0, "", "")
