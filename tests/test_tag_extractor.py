import unittest
import os
import sys
import tempfile

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from sketchprep.config import PipelineSettings
from sketchprep.errors import ParseError, ToolInvocationError
from sketchprep.line_buffer import LineTaggedBuffer
from sketchprep.tag_extractor import (
    RawTag, escape_pattern, parse_tag_record, parse_tags_output, run_tag_extractor,
)
from sketchprep.tools import ToolResult, ToolRunner

CTAGS_OUTPUT = (
    "!_TAG_FILE_FORMAT\t2\t/extended format/\n"
    "!_TAG_PROGRAM_NAME\tUniversal Ctags\t//\n"
    "foo\t/tmp/x.cpp\t/^void foo(int x) {$/;\"\tkind:function\tline:3\tsignature:(int x)\treturntype:void\n"
    "bar\t/tmp/x.cpp\t/^int bar(int);$/;\"\tkind:prototype\tline:1\tsignature:(int)\ttyperef:typename:int\n"
    "run\t/tmp/x.cpp\t/^  void run() {}$/;\"\tkind:function\tline:7\tclass:Motor\tsignature:()\n"
    "Motor\t/tmp/x.cpp\t/^class Motor {$/;\"\tkind:class\tline:6\n"
    "garbage without separators\n"
    "baz\t/tmp/x.cpp\t/^void baz() {$/;\"\tkind:function\tline:notanumber\n"
)


class TestParseTagRecord(unittest.TestCase):

    def test_function_record(self):
        tag = parse_tag_record(CTAGS_OUTPUT.splitlines()[2])
        self.assertEqual(tag.kind, "function")
        self.assertEqual(tag.name, "foo")
        self.assertEqual(tag.line, 3)
        self.assertEqual(tag.signature, "(int x)")
        self.assertEqual(tag.return_type, "void")
        self.assertEqual(tag.code, "void foo(int x) {")
        self.assertEqual(tag.scope, "")

    def test_typeref_return_type(self):
        tag = parse_tag_record(CTAGS_OUTPUT.splitlines()[3])
        self.assertEqual(tag.kind, "prototype")
        self.assertEqual(tag.return_type, "int")

    def test_class_scope(self):
        tag = parse_tag_record(CTAGS_OUTPUT.splitlines()[4])
        self.assertEqual(tag.scope, "Motor")

    def test_universal_ctags_scope_field(self):
        tag = parse_tag_record('run\tx.cpp\t/^void run() {}$/;"\tf\tline:4\tscope:class:Motor')
        self.assertEqual(tag.kind, "function")
        self.assertEqual(tag.scope, "Motor")

    def test_short_kind(self):
        tag = parse_tag_record('bar\tx.cpp\t/^int bar(int);$/;"\tp\tline:1')
        self.assertEqual(tag.kind, "prototype")

    def test_escaped_pattern(self):
        code = 'const char *p = "a/b\\\\c";'
        row = "p\tx.cpp\t/^" + escape_pattern(code) + '$/;"\tkind:variable\tline:1'
        self.assertEqual(parse_tag_record(row).code, code)

    def test_malformed_records_raise(self):
        with self.assertRaises(ParseError) as ctx:
            parse_tag_record("garbage without separators")
        self.assertEqual(ctx.exception.raw_record, "garbage without separators")
        with self.assertRaises(ParseError):
            parse_tag_record(CTAGS_OUTPUT.splitlines()[-1])


class TestParseTagsOutput(unittest.TestCase):

    def test_malformed_records_are_skipped_with_warning(self):
        with self.assertLogs("sketchprep.tag_extractor", level="WARNING") as logs:
            tags = parse_tags_output(CTAGS_OUTPUT)
        self.assertEqual([t.name for t in tags], ["foo", "bar", "run", "Motor"])
        self.assertEqual(len([r for r in logs.records if r.levelname == "WARNING"]), 2)


class _CannedTagger(ToolRunner):
    def __init__(self, text, exit_code=0, stderr=""):
        self.text = text
        self.exit_code = exit_code
        self.stderr = stderr
        self.calls = []

    def run(self, tool, args, workdir):
        self.calls.append((tool, list(args), workdir))
        if self.exit_code != 0:
            return ToolResult(self.exit_code, "", self.stderr)
        out = args[args.index("-f") + 1]
        with open(out, "w") as f:
            f.write(self.text)
        return ToolResult(0, "", "")


class TestRunTagExtractor(unittest.TestCase):

    def test_reads_records_from_output_file(self):
        runner = _CannedTagger(CTAGS_OUTPUT)
        filtered = LineTaggedBuffer.from_text("int bar(int);\n\nvoid foo(int x) {\n}\n", "x.ino")
        with tempfile.TemporaryDirectory() as scratch:
            tags = run_tag_extractor(runner, PipelineSettings(), filtered, scratch)
            target = os.path.join(scratch, "ctags_target_for_gcc_minus_e.cpp")
            with open(target) as f:
                self.assertEqual(f.read(), filtered.text)
        tool, args, _ = runner.calls[0]
        self.assertEqual(tool, "ctags")
        self.assertIn("--language-force=c++", args)
        self.assertEqual(args[-1], target)
        self.assertIsInstance(tags[0], RawTag)
        self.assertEqual(len(tags), 4)

    def test_tool_failure(self):
        runner = _CannedTagger("", exit_code=2, stderr="ctags: unrecognized option\n")
        filtered = LineTaggedBuffer.from_text("void f() {}\n", "x.ino")
        with tempfile.TemporaryDirectory() as scratch:
            with self.assertRaises(ToolInvocationError) as ctx:
                run_tag_extractor(runner, PipelineSettings(), filtered, scratch)
        self.assertEqual(ctx.exception.stage, "ctags")
        self.assertEqual(ctx.exception.exit_code, 2)
        self.assertEqual(ctx.exception.diagnostic_text, "ctags: unrecognized option\n")


if __name__ == "__main__":
    unittest.main()
