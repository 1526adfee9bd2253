"""
Sketch Prototype Agent — MCP Server

Exposes tools via the Model Context Protocol:

  1.  add_prototypes            — preprocess a sketch, synthesize prototypes and
                                  write the compilable <sketch>.cpp
  2.  list_function_candidates  — show every top-level function found, whether
                                  it is already declared, and its prototype
"""

from mcp.server.fastmcp import FastMCP
import os
import sys

# Ensure sketchprep is importable when run from a checkout
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from sketchprep.config import PipelineSettings, parse_defines, parse_include_dirs
from sketchprep.errors import RewriteError, ToolInvocationError
from sketchprep.pipeline import PrototypePipeline, SketchInput, save_rewritten

# ═══════════════════════════════════════════════════════════════════════
#  Server Setup
# ═══════════════════════════════════════════════════════════════════════

mcp = FastMCP("Sketch Prototype Agent")


def _settings(extra_defines: str, preprocessor: str, tagger: str) -> PipelineSettings:
    return PipelineSettings(
        preprocessor=preprocessor,
        tagger=tagger,
        defines=parse_defines(extra_defines),
    )


def _run(sketch_path: str, build_dir: str, include_dirs: str, extra_defines: str,
         preprocessor: str, tagger: str):
    """Run the pipeline.  Returns (result, error_message); exactly one is non-None."""
    if not os.path.isfile(sketch_path):
        return None, f"Error: Sketch file not found at {sketch_path}"
    try:
        settings = _settings(extra_defines, preprocessor, tagger)
    except ValueError as e:
        return None, f"Error: Invalid settings: {e}"

    with open(sketch_path, "r", encoding="utf-8", errors="replace") as f:
        source = f.read()

    sketch = SketchInput(
        source=source,
        main_file=sketch_path,
        work_dir=build_dir,
        include_dirs=parse_include_dirs(include_dirs),
    )
    try:
        return PrototypePipeline(settings).run(sketch), None
    except ToolInvocationError as e:
        return None, (
            f"Error: `{e.stage}` failed (exit status {e.exit_code}).\n\n"
            f"```\n{e.diagnostic_text.rstrip()}\n```"
        )
    except RewriteError as e:
        return None, f"Error: internal rewrite failure: {e.reason}"


# ═══════════════════════════════════════════════════════════════════════
#  Tool 1 — Add Prototypes
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def add_prototypes(sketch_path: str, build_dir: str, include_dirs: str = "",
                   extra_defines: str = "", preprocessor: str = "gcc",
                   tagger: str = "ctags") -> str:
    """
    Adds forward declarations for every user function of a sketch and writes
    the result to <build_dir>/<sketch name>.cpp.

    Args:
        sketch_path:   Path to the (already concatenated) sketch source.
        build_dir:     Working directory; scratch files are created and removed here.
        include_dirs:  Comma-separated include folders passed to the preprocessor.
        extra_defines: Comma-separated defines (NAME=VALUE or NAME).
        preprocessor:  "gcc" (external g++) or "pcpp" (in-process).
        tagger:        "ctags" (external) or "tree-sitter" (in-process).
    """
    result, error = _run(sketch_path, build_dir, include_dirs, extra_defines,
                         preprocessor, tagger)
    if error:
        return error

    target = save_rewritten(result, sketch_path, build_dir)
    prototypes = result.prototypes
    out = f"## Prototypes for `{os.path.basename(sketch_path)}`\n\n"
    out += f"Wrote `{target}`.\n\n"
    if not prototypes:
        out += "No prototypes needed: every function is already declared.\n"
        return out
    anchor = result.insertions[0].line
    out += f"Inserted {len(prototypes)} prototype(s) before line {anchor}:\n\n```cpp\n"
    out += "\n".join(prototypes)
    out += "\n```\n"
    return out


# ═══════════════════════════════════════════════════════════════════════
#  Tool 2 — List Function Candidates
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def list_function_candidates(sketch_path: str, build_dir: str, include_dirs: str = "",
                             extra_defines: str = "", preprocessor: str = "gcc",
                             tagger: str = "ctags") -> str:
    """
    Lists the top-level function definitions found in a sketch, whether each
    one is already declared, and the prototype that would be synthesized.
    Does not write any output file.
    """
    result, error = _run(sketch_path, build_dir, include_dirs, extra_defines,
                         preprocessor, tagger)
    if error:
        return error

    if not result.candidates:
        return f"No top-level function definitions found in `{sketch_path}`."

    out = f"## Functions in `{os.path.basename(sketch_path)}`\n\n"
    out += "| Function | Defined at | Status | Prototype |\n"
    out += "|----------|------------|--------|-----------|\n"
    for c in result.candidates:
        status = "declared" if c.has_declaration else "**needs prototype**"
        where = f"{os.path.basename(c.file)}:{c.line}"
        out += f"| `{c.name}` | {where} | {status} | `{c.prototype_text()}` |\n"
    return out


if __name__ == "__main__":
    mcp.run()
