import unittest
import os
import sys

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from sketchprep.classifier import FunctionCandidate
from sketchprep.errors import RewriteError
from sketchprep.line_buffer import LineTaggedBuffer
from sketchprep.rewriter import rewrite_source
from sketchprep.synthesizer import PrototypeInsertion, find_insertion_line, synthesize_prototypes


def _candidate(name, line, params="()", ret="void", declared=False, file="sketch.ino"):
    return FunctionCandidate(name=name, return_type=ret, parameters=params,
                             definition_parameters=params, file=file, line=line,
                             has_declaration=declared)


class TestInsertionPoint(unittest.TestCase):

    def _anchor(self, text):
        return find_insertion_line(LineTaggedBuffer.from_text(text, "sketch.ino"))

    def test_after_leading_directives_and_comments(self):
        text = (
            "// Blink\n"
            "/* multi\n"
            "   line */\n"
            "#include <Arduino.h>\n"
            "#define LONG_MACRO(a) \\\n"
            "    ((a) + 1)\n"
            "\n"
            "int led = 13;\n"
            "void setup() {}\n"
        )
        self.assertEqual(self._anchor(text), 8)

    def test_code_after_closing_comment(self):
        self.assertEqual(self._anchor("/* header\n */ int x;\n"), 2)

    def test_open_conditional_moves_anchor_up(self):
        text = "#include <Arduino.h>\n#ifdef USE_LED\nint led = 13;\n#endif\nvoid f() {}\n"
        self.assertEqual(self._anchor(text), 2)

    def test_closed_conditional_is_skipped(self):
        text = "#ifndef N\n#define N 3\n#endif\nvoid f() {}\n"
        self.assertEqual(self._anchor(text), 4)

    def test_only_trivia(self):
        self.assertEqual(self._anchor("// nothing\n\n"), 3)


class TestSynthesizer(unittest.TestCase):

    def test_declared_candidates_are_skipped(self):
        original = LineTaggedBuffer.from_text("int bar(int);\nint bar(int n) {}\n", "sketch.ino")
        self.assertEqual(synthesize_prototypes([_candidate("bar", 2, "(int n)", "int", True)],
                                               original), [])

    def test_single_anchor_in_order(self):
        original = LineTaggedBuffer.from_text(
            "#include <Arduino.h>\nvoid foo(int x) {\n}\nvoid setup() { foo(3); }\n", "sketch.ino",
        )
        insertions = synthesize_prototypes(
            [_candidate("foo", 2, "(int x)"), _candidate("setup", 4)], original,
        )
        self.assertEqual([i.line for i in insertions], [2, 2])
        self.assertEqual(insertions[0].text, '#line 2 "sketch.ino"\nvoid foo(int x);')
        self.assertEqual(insertions[1].text, '#line 4 "sketch.ino"\nvoid setup();')


class TestRewriter(unittest.TestCase):

    SOURCE = (
        "#include <Arduino.h>\n"
        "void foo(int x) {\n"
        "  Serial.println(x);\n"
        "}\n"
        "void setup() { foo(3); }\n"
        "void loop() { undefined_call(); }\n"
    )

    def setUp(self):
        self.original = LineTaggedBuffer.from_text(self.SOURCE, "sketch.ino")
        candidates = [_candidate("foo", 2, "(int x)"), _candidate("setup", 5), _candidate("loop", 6)]
        self.insertions = synthesize_prototypes(candidates, self.original)
        self.rewritten = rewrite_source(self.original, self.insertions)

    def test_prototype_precedes_definitions(self):
        lines = self.rewritten.splitlines()
        proto = lines.index("void foo(int x);")
        self.assertLess(proto, lines.index("void foo(int x) {"))
        self.assertLess(proto, lines.index("void setup() { foo(3); }"))

    def test_original_lines_are_untouched(self):
        body = [ln for ln in self.rewritten.splitlines()
                if not ln.startswith("#line") and ln not in ("void foo(int x);", "void setup();", "void loop();")]
        self.assertEqual(body, self.SOURCE.splitlines())

    def test_diagnostic_lines_are_preserved(self):
        """A compiler reading the rewritten buffer must see original line numbers."""
        reread = LineTaggedBuffer.from_text(self.rewritten, "sketch.ino")
        for number, text in enumerate(self.SOURCE.splitlines(), start=1):
            idx = reread.texts.index(text) + 1
            self.assertEqual(reread.origin_of(idx).line, number, text)

    def test_block_layout(self):
        lines = self.rewritten.splitlines()
        self.assertEqual(lines[:9], [
            "#include <Arduino.h>",
            '#line 2 "sketch.ino"',
            "void foo(int x);",
            '#line 5 "sketch.ino"',
            "void setup();",
            '#line 6 "sketch.ino"',
            "void loop();",
            '#line 2 "sketch.ino"',
            "void foo(int x) {",
        ])

    def test_no_insertions_returns_source(self):
        self.assertEqual(rewrite_source(self.original, []), self.SOURCE)

    def test_out_of_range_insertion(self):
        with self.assertRaises(RewriteError):
            rewrite_source(self.original, [PrototypeInsertion(99, "void x();")])
        with self.assertRaises(RewriteError):
            rewrite_source(self.original, [PrototypeInsertion(0, "void x();")])

    def test_batch_with_several_anchors(self):
        insertions = [PrototypeInsertion(5, "void b();"), PrototypeInsertion(2, "void a();")]
        lines = rewrite_source(self.original, insertions).splitlines()
        self.assertEqual(lines[1], "void a();")
        self.assertEqual(lines[2], '#line 2 "sketch.ino"')
        self.assertEqual(lines[lines.index("void b();") + 1], '#line 5 "sketch.ino"')
        self.assertEqual(lines[lines.index("void b();") + 2], "void setup() { foo(3); }")

    def test_rewrite_keeps_existing_line_markers(self):
        source = '#include <Arduino.h>\n#line 1 "/home/u/Blink/Blink.ino"\nvoid blink() {}\n'
        original = LineTaggedBuffer.from_text(source, "Blink.ino")
        insertions = synthesize_prototypes(
            [_candidate("blink", 1, file="/home/u/Blink/Blink.ino")], original,
        )
        self.assertEqual(insertions[0].line, 3)
        lines = rewrite_source(original, insertions).splitlines()
        self.assertEqual(lines[2:6], [
            '#line 1 "/home/u/Blink/Blink.ino"',
            "void blink();",
            '#line 1 "/home/u/Blink/Blink.ino"',
            "void blink() {}",
        ])


if __name__ == "__main__":
    unittest.main()
