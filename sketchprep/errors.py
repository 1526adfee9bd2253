"""
Pipeline errors.

  • ToolInvocationError — an external tool could not run or exited non-zero.
                          Always fatal; carries the tool's own diagnostics.
  • ParseError          — one malformed tag record.  Recovered locally.
  • RewriteError        — an insertion point outside the source buffer.
                          Fatal; indicates a pipeline bug, not bad input.
"""

from typing import Optional


class SketchPrepError(Exception):
    """Base class for every error raised by the prototype pipeline."""


class ToolInvocationError(SketchPrepError):
    def __init__(self, stage: str, exit_code: Optional[int], diagnostic_text: str):
        self.stage = stage
        self.exit_code = exit_code
        self.diagnostic_text = diagnostic_text
        if exit_code is None:
            summary = f"{stage}: tool could not be started"
        else:
            summary = f"{stage}: tool exited with status {exit_code}"
        super().__init__(f"{summary}\n{diagnostic_text}" if diagnostic_text else summary)


class ParseError(SketchPrepError):
    def __init__(self, raw_record: str, reason: str = "malformed tag record"):
        self.raw_record = raw_record
        self.reason = reason
        super().__init__(f"{reason}: {raw_record!r}")


class RewriteError(SketchPrepError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
