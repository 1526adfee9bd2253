"""
Tool runners — the narrow seam between the pipeline and external programs.

Every stage that needs an external tool calls ``runner.run(tool, args, workdir)``
and gets a ToolResult back.  The real implementation shells out; in-process
backends (pcpp, tree-sitter) and test fakes implement the same method.
"""

import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from .errors import ToolInvocationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResult:
    exit_code: Optional[int]   # None when the tool could not be started
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ToolRunner:
    """Interface: run ``tool`` with ``args`` inside ``workdir``."""

    def run(self, tool: str, args: List[str], workdir: str) -> ToolResult:
        raise NotImplementedError


class SubprocessToolRunner(ToolRunner):
    """Runs real executables with ``subprocess.run``."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def run(self, tool: str, args: List[str], workdir: str) -> ToolResult:
        cmd = [tool] + list(args)
        logger.debug("exec: %s (cwd=%s)", subprocess.list2cmdline(cmd), workdir)
        try:
            proc = subprocess.run(
                cmd,
                cwd=workdir,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError:
            return ToolResult(None, "", f"{tool}: command not found")
        except PermissionError as e:
            return ToolResult(None, "", f"{tool}: {e}")
        except subprocess.TimeoutExpired:
            return ToolResult(None, "", f"{tool}: timed out after {self.timeout}s")
        return ToolResult(proc.returncode, proc.stdout, proc.stderr)


def run_tool(runner: ToolRunner, stage: str, tool: str, args: List[str], workdir: str) -> ToolResult:
    """Run a tool and raise ToolInvocationError unless it succeeded."""
    result = runner.run(tool, args, workdir)
    if not result.ok:
        # Pass the tool's own message through untouched
        diagnostic = result.stderr or result.stdout
        logger.error("%s failed (exit=%s)", stage, result.exit_code)
        raise ToolInvocationError(stage, result.exit_code, diagnostic)
    if result.stderr.strip():
        logger.debug("%s stderr: %s", stage, result.stderr.strip())
    return result
