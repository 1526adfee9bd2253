import unittest
import os
import sys

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from sketchprep.line_buffer import LineTaggedBuffer, Origin
from sketchprep.origin_filter import (
    SketchFiles, collect_sketch_files, filter_sketch_source, tag_expanded,
)

# Shaped like `g++ -E -CC` output for a sketch including one header that
# includes the sketch's own helper file again.
EXPANDED = "\n".join([
    '# 0 "/build/sketch_merged.cpp"',
    '# 0 "<built-in>"',
    '# 0 "<command-line>"',
    '# 1 "/build/sketch_merged.cpp"',
    '# 1 "/ide/cores/arduino/Arduino.h" 1 3 4',
    'void pinMode(int pin, int mode);',
    'int analogRead(int pin) { return 0; }',
    '# 2 "/build/sketch_merged.cpp" 2',
    '# 1 "/home/u/Blink/Blink.ino"',
    'void blink(int ms) {',
    '}',
    '# 1 "/home/u/Blink/config.h" 1',
    '# 1 "/home/u/Blink/helpers.ino" 1',
    'int helper() { return 1; }',
    '# 2 "/home/u/Blink/config.h" 2',
    'int config_value;',
    '# 4 "/home/u/Blink/Blink.ino" 2',
    'void setup() { blink(1); }',
]) + "\n"


class TestSketchOriginFilter(unittest.TestCase):

    def setUp(self):
        original = LineTaggedBuffer.from_text(
            '#include <Arduino.h>\n#line 1 "/home/u/Blink/Blink.ino"\n'
            'void blink(int ms) {\n}\n#include "config.h"\nvoid setup() { blink(1); }\n'
            '#line 1 "/home/u/Blink/helpers.ino"\nint helper() { return 1; }\n',
            "Blink.ino",
        )
        self.sketch_files = collect_sketch_files(original, "Blink.ino")
        self.expanded = tag_expanded(
            EXPANDED, "Blink.ino", self.sketch_files,
            aliases={"/build/sketch_merged.cpp": "Blink.ino"},
        )
        self.filtered = filter_sketch_source(self.expanded)

    def test_sketch_files_come_from_markers(self):
        self.assertIn("/home/u/Blink/helpers.ino", self.sketch_files)
        self.assertIn("Blink.ino", self.sketch_files)
        self.assertNotIn("/ide/cores/arduino/Arduino.h", self.sketch_files)

    def test_line_count_is_preserved(self):
        self.assertEqual(len(self.filtered), len(self.expanded))
        self.assertEqual(len(self.filtered.text.splitlines()),
                         len(EXPANDED.splitlines()))

    def test_header_lines_are_blanked(self):
        texts = self.filtered.texts
        self.assertNotIn("void pinMode(int pin, int mode);", texts)
        self.assertNotIn("int analogRead(int pin) { return 0; }", texts)
        self.assertNotIn("int config_value;", texts)

    def test_markers_are_blanked(self):
        for sl in self.filtered:
            if sl.marker:
                self.assertEqual(sl.text, "")

    def test_sketch_lines_are_kept_with_origin(self):
        texts = self.filtered.texts
        idx = texts.index("void blink(int ms) {") + 1
        self.assertEqual(self.filtered.origin_of(idx), Origin("/home/u/Blink/Blink.ino", 1))

    def test_reentry_from_header(self):
        """A sketch file included from a header counts as sketch again."""
        texts = self.filtered.texts
        self.assertIn("int helper() { return 1; }", texts)
        idx = texts.index("void setup() { blink(1); }") + 1
        self.assertEqual(self.filtered.origin_of(idx).line, 4)

    def test_empty_input(self):
        filtered = filter_sketch_source(tag_expanded("", "a.ino", SketchFiles(["a.ino"])))
        self.assertEqual(len(filtered), 0)

    def test_no_markers_keeps_everything(self):
        text = "int a;\nvoid f() {}\n"
        filtered = filter_sketch_source(tag_expanded(text, "a.ino", SketchFiles(["a.ino"])))
        self.assertEqual(filtered.text, text)


if __name__ == "__main__":
    unittest.main()
