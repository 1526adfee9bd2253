import io
import os
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pcpp import Preprocessor, OutputDirective, Action

from .tools import ToolResult, ToolRunner, run_tool

logger = logging.getLogger(__name__)

PREPROCESS_STAGE = "preprocess"


class _QuietPreprocessor(Preprocessor):
    """A pcpp Preprocessor that collects diagnostics instead of printing them.

    Unfound *system* includes (``<Arduino.h>``, toolchain headers) are passed
    through untouched and logged at DEBUG: pcpp has no toolchain search path,
    so failing on them would make the in-process backend useless.  Unfound
    quoted includes are real errors, reported the way a compiler would.
    """

    def __init__(self):
        super().__init__()
        self.diagnostics: List[str] = []

    def on_include_not_found(self, is_malformed, is_system_include, curdir, includepath):
        if is_system_include:
            logger.debug("pcpp: system include not found: %s", includepath)
            raise OutputDirective(Action.IgnoreAndPassThrough)
        self.diagnostics.append(
            "%s: fatal error: %s: No such file or directory" % (curdir, includepath)
        )
        raise OutputDirective(Action.IgnoreAndPassThrough)

    def on_error(self, file, line, msg):
        self.diagnostics.append("%s:%s: error: %s" % (file, line, msg))


def _parse_cpp_args(args: List[str]) -> Tuple[List[str], Dict[str, str], Optional[str], Optional[str]]:
    """Pick -I, -D, -o and the input file out of a gcc-style command line."""
    include_dirs: List[str] = []
    defines: Dict[str, str] = {}
    output = None
    source = None
    takes_value = {"-I", "-D", "-o", "-x", "-include"}

    i = 0
    while i < len(args):
        arg = args[i]
        if arg in takes_value:
            value = args[i + 1] if i + 1 < len(args) else ""
            i += 2
        elif arg[:2] in ("-I", "-D", "-o") and len(arg) > 2:
            arg, value = arg[:2], arg[2:]
            i += 1
        elif arg.startswith("-"):
            i += 1
            continue
        else:
            source = arg
            i += 1
            continue

        if arg == "-I":
            include_dirs.append(value)
        elif arg == "-D":
            name, _, val = value.partition("=")
            defines[name] = val or "1"
        elif arg == "-o":
            output = value
    return include_dirs, defines, output, source


class PcppToolRunner(ToolRunner):
    """In-process preprocessor backend speaking a subset of the gcc command line.

    Understands ``-I``, ``-D``, ``-o`` and the input file; every other flag
    (``-E``, ``-CC``, ``-w``, ``-x c++``) is accepted and ignored.  Output keeps
    pcpp's ``#line N "file"`` directives, which the origin filter reads.
    """

    def run(self, tool: str, args: List[str], workdir: str) -> ToolResult:
        include_dirs, defines, output, source = _parse_cpp_args(args)
        if source is None:
            return ToolResult(1, "", "pcpp: no input file")

        source_path = os.path.join(workdir, source)
        pp = _QuietPreprocessor()
        for d in include_dirs:
            pp.add_path(os.path.join(workdir, d))
        # add_path makes #line names cwd-relative; keep them as opened
        pp.rewrite_paths = []
        for k, v in defines.items():
            pp.define(f"{k} {v}")

        output_buffer = io.StringIO()
        try:
            with open(source_path, "r", encoding="utf-8", errors="replace") as f:
                pp.parse(f.read(), source=source)
            pp.write(output_buffer)
        except OSError as e:
            return ToolResult(1, "", f"pcpp: {e}")
        except Exception as e:
            logger.error("Preprocessing failed for %s: %s", source, e)
            return ToolResult(1, "", f"pcpp: {source}: {e}")

        if pp.diagnostics:
            return ToolResult(1, "", "\n".join(pp.diagnostics) + "\n")

        expanded = output_buffer.getvalue()
        if output is None:
            return ToolResult(0, expanded, "")
        with open(os.path.join(workdir, output), "w", encoding="utf-8") as f:
            f.write(expanded)
        return ToolResult(0, "", "")


# ═══════════════════════════════════════════════════════════════════════
#  Preprocessor invocation
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PreprocessResult:
    source_path: str    # the merged sketch as handed to the preprocessor
    output_path: str
    text: str


def build_preprocessor_args(settings, source_path: str, output_path: str,
                            include_dirs: List[str]) -> List[str]:
    args = list(settings.preprocessor_flags)
    for name, value in settings.defines.items():
        args.append(f"-D{name}={value}")
    for d in include_dirs:
        args.append(f"-I{d}")
    args += [source_path, "-o", output_path]
    return args


def run_preprocessor(runner: ToolRunner, settings, source: str,
                     include_dirs: List[str], scratch_dir: str) -> PreprocessResult:
    """Expand macros and includes of the merged sketch source.

    Raises ToolInvocationError with the preprocessor's diagnostics verbatim.
    """
    source_path = os.path.join(scratch_dir, settings.merged_file)
    output_path = os.path.join(scratch_dir, settings.preproc_output_file)
    with open(source_path, "w", encoding="utf-8") as f:
        f.write(source)

    args = build_preprocessor_args(settings, source_path, output_path, include_dirs)
    result = run_tool(runner, PREPROCESS_STAGE, settings.preprocessor_command, args, scratch_dir)

    if os.path.isfile(output_path):
        with open(output_path, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()
    else:
        # Some tools ignore -o and print to stdout
        text = result.stdout
    logger.info("preprocess: %d bytes expanded from %s", len(text), source_path)
    return PreprocessResult(source_path, output_path, text)
