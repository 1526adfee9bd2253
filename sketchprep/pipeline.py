"""
Prototype pipeline — runs the stages in strict sequence for one sketch:

  preprocess → origin filter → tag scan → classify → synthesize → rewrite

Each stage takes the previous stage's output explicitly and returns an
immutable result; nothing is shared between runs, so independent sketches
can be processed concurrently with separate pipeline instances.

Scratch files live in a temporary directory inside the working directory and
are removed on every exit path.
"""

import os
import logging
import tempfile
from dataclasses import dataclass, field
from typing import List, Optional

from .classifier import FunctionCandidate, classify_tags
from .config import PipelineSettings
from .line_buffer import LineTaggedBuffer
from .origin_filter import collect_sketch_files, filter_sketch_source, tag_expanded
from .preprocessor import run_preprocessor
from .rewriter import rewrite_source
from .synthesizer import PrototypeInsertion, synthesize_prototypes
from .tag_extractor import RawTag, run_tag_extractor
from .tools import ToolRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SketchInput:
    source: str                  # concatenated sketch, may contain #line markers
    main_file: str               # identity of the sketch's main file
    work_dir: str
    include_dirs: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PipelineResult:
    original: LineTaggedBuffer
    expanded: LineTaggedBuffer
    filtered: LineTaggedBuffer
    tags: List[RawTag]
    candidates: List[FunctionCandidate]
    insertions: List[PrototypeInsertion]
    source: str                  # the rewritten sketch

    @property
    def prototypes(self) -> List[str]:
        return [c.prototype_text() for c in self.candidates if not c.has_declaration]


class PrototypePipeline:
    """Adds function prototypes to a sketch.

    Usage:
        pipeline = PrototypePipeline(PipelineSettings(preprocessor="pcpp", tagger="tree-sitter"))
        result = pipeline.run(SketchInput(source, "Blink.ino", "/tmp/build", ["/path/to/Blink"]))
        result.source   # rewritten sketch
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        preprocessor_runner: Optional[ToolRunner] = None,
        tag_runner: Optional[ToolRunner] = None,
    ):
        self.settings = settings or PipelineSettings()
        self.preprocessor_runner = preprocessor_runner or self.settings.make_preprocessor_runner()
        self.tag_runner = tag_runner or self.settings.make_tag_runner()

    def _include_dirs(self, sketch: SketchInput) -> List[str]:
        dirs = [os.path.abspath(d) for d in sketch.include_dirs]
        if os.path.isfile(sketch.main_file):
            # quoted includes next to the sketch must still resolve from the scratch copy
            sketch_dir = os.path.dirname(os.path.abspath(sketch.main_file))
            if sketch_dir not in dirs:
                dirs.insert(0, sketch_dir)
        return dirs

    def run(self, sketch: SketchInput) -> PipelineResult:
        settings = self.settings
        original = LineTaggedBuffer.from_text(sketch.source, sketch.main_file)
        logger.info("pipeline: %s (%d lines)", sketch.main_file, len(original))

        os.makedirs(sketch.work_dir, exist_ok=True)
        include_dirs = self._include_dirs(sketch)

        with tempfile.TemporaryDirectory(prefix=settings.scratch_prefix, dir=sketch.work_dir) as scratch:
            pre = run_preprocessor(
                self.preprocessor_runner, settings, sketch.source, include_dirs, scratch,
            )
            sketch_files = collect_sketch_files(original, sketch.main_file)
            expanded = tag_expanded(
                pre.text, sketch.main_file, sketch_files,
                aliases={pre.source_path: sketch.main_file},
            )
            filtered = filter_sketch_source(expanded)
            tags = run_tag_extractor(self.tag_runner, settings, filtered, scratch)

        candidates = classify_tags(tags, filtered)
        insertions = synthesize_prototypes(candidates, original)
        rewritten = rewrite_source(original, insertions)

        return PipelineResult(
            original=original,
            expanded=expanded,
            filtered=filtered,
            tags=tags,
            candidates=candidates,
            insertions=insertions,
            source=rewritten,
        )


def save_rewritten(result: PipelineResult, main_file: str, build_dir: str) -> str:
    """Write the rewritten sketch as ``<main file name>.cpp`` into ``build_dir``."""
    os.makedirs(build_dir, exist_ok=True)
    target = os.path.join(build_dir, os.path.basename(main_file) + ".cpp")
    with open(target, "w", encoding="utf-8") as f:
        f.write(result.source)
    logger.info("saved %s", target)
    return target
