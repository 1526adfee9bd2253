"""
Pipeline settings.

Which preprocessor and tag scanner to use, how to call them, and the names of
the scratch files written inside the build's working directory.
"""

import logging
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .tools import SubprocessToolRunner, ToolRunner

logger = logging.getLogger(__name__)

# Scratch file names (inside the per-run scratch directory)
SKETCH_MERGED_FILE = "sketch_merged.cpp"
PREPROC_OUTPUT_FILE = "preproc_output.cpp"
CTAGS_TARGET_FILE = "ctags_target_for_gcc_minus_e.cpp"
CTAGS_OUTPUT_FILE = "ctags_output.tags"


class PipelineSettings(BaseModel):
    # ── Preprocessor ──
    preprocessor: Literal["gcc", "pcpp"] = "gcc"
    preprocessor_command: str = "g++"
    preprocessor_flags: List[str] = Field(
        default_factory=lambda: ["-w", "-x", "c++", "-E", "-CC"]
    )
    defines: Dict[str, str] = Field(default_factory=dict)

    # ── Tag scanner ──
    tagger: Literal["ctags", "tree-sitter"] = "ctags"
    ctags_command: str = "ctags"
    ctags_flags: List[str] = Field(
        default_factory=lambda: [
            "-u", "--language-force=c++", "--c++-kinds=svpf", "--fields=KSTtzns",
        ]
    )

    # ── Process policy ──
    tool_timeout: Optional[float] = None

    # ── Scratch files ──
    scratch_prefix: str = "preproc-"
    merged_file: str = SKETCH_MERGED_FILE
    preproc_output_file: str = PREPROC_OUTPUT_FILE
    ctags_target_file: str = CTAGS_TARGET_FILE
    ctags_output_file: str = CTAGS_OUTPUT_FILE

    def make_preprocessor_runner(self) -> ToolRunner:
        if self.preprocessor == "pcpp":
            from .preprocessor import PcppToolRunner
            return PcppToolRunner()
        return SubprocessToolRunner(timeout=self.tool_timeout)

    def make_tag_runner(self) -> ToolRunner:
        if self.tagger == "tree-sitter":
            from .ts_tagger import TreeSitterTagRunner
            return TreeSitterTagRunner()
        return SubprocessToolRunner(timeout=self.tool_timeout)


def parse_defines(extra_defines: str) -> Dict[str, str]:
    """Parse "NAME=VALUE,NAME" into a defines dict (bare names map to "1")."""
    defines: Dict[str, str] = {}
    for define in extra_defines.split(","):
        define = define.strip()
        if not define:
            continue
        if "=" in define:
            name, value = define.split("=", 1)
            defines[name.strip()] = value.strip()
        else:
            defines[define] = "1"
    return defines


def parse_include_dirs(include_dirs: str) -> List[str]:
    """Parse a comma-separated include folder list."""
    return [d.strip() for d in include_dirs.split(",") if d.strip()]
