"""Runs the split pipeline stages in order and hands the result to the transport"""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import List, Optional
import logging

from ..config import SplitterConfig, TransferMode
from ..errors import InsufficientSpaceError, PreconditionError, UploadError
from .chunker import Chunker, Part, SourceFile
from .fingerprint import Fingerprinter, digest_path
from .manifest import ManifestBuilder
from .planner import PlanContext, TransferPlan, TransferPlanner
from .space import SpaceCheck, SpaceEstimator

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    """Stages of one invocation; there is no resuming from the middle"""
    IDLE = 0
    VALIDATING = 1
    FINGERPRINTING = 2
    SPLITTING = 3
    FINGERPRINTING_PARTS = 4
    MANIFEST_BUILT = 5
    TRANSFER_PLANNED = 6
    DONE = 7


@dataclass
class UploadReport:
    """Per-artifact upload outcome"""
    uploaded: List[str] = field(default_factory=list)
    failed: List[UploadError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class RunResult:
    """What a run produced on disk and on the wire"""
    plan: TransferPlan
    report: UploadReport
    source: Optional[SourceFile] = None
    parts: List[Part] = field(default_factory=list)
    manifest_path: Optional[Path] = None
    source_digest_path: Optional[Path] = None
    space: Optional[SpaceCheck] = None


class SplitPipeline:
    """
    Space check -> source digest -> split -> part digests -> manifest
    -> transfer plan -> upload

    Each stage finishes before the next one starts. Selective re-upload
    skips straight to planning.
    """

    def __init__(self, config: SplitterConfig, uploader=None,
                 estimator: Optional[SpaceEstimator] = None,
                 fingerprinter: Optional[Fingerprinter] = None,
                 chunker: Optional[Chunker] = None,
                 builder: Optional[ManifestBuilder] = None,
                 planner: Optional[TransferPlanner] = None,
                 hint: Optional[str] = None):
        self.config = config
        self.uploader = uploader
        self.estimator = estimator or SpaceEstimator(
            multiplier=config.multiplier,
            slack=config.slack_bytes
        )
        self.fingerprinter = fingerprinter or Fingerprinter()
        self.chunker = chunker or Chunker()
        self.builder = builder or ManifestBuilder()
        self.planner = planner or TransferPlanner()
        self.hint = hint
        self.state = PipelineState.IDLE

    def _enter(self, state: PipelineState):
        logger.debug(f"{self.state.name} -> {state.name}")
        self.state = state

    async def run(self, source_path: Optional[Path] = None) -> RunResult:
        self.state = PipelineState.IDLE
        self.config.validate()

        if self.config.mode == TransferMode.SELECTIVE:
            return await self.reupload()

        if source_path is None:
            raise PreconditionError("No input file given")
        return await self.split(Path(source_path))

    async def reupload(self) -> RunResult:
        """Upload just the named parts, under the case's missing/ path"""
        self._enter(PipelineState.VALIDATING)
        logger.info(f"Re-uploading missing files: {' '.join(self.config.missing_parts)}")

        plan = self.planner.plan(TransferMode.SELECTIVE, PlanContext(
            work_dir=self.config.work_dir,
            requested=self.config.missing_parts,
            hint=self.hint
        ))
        self._enter(PipelineState.TRANSFER_PLANNED)

        report = await self.transfer(plan)
        self._enter(PipelineState.DONE)
        return RunResult(plan=plan, report=report)

    async def split(self, source_path: Path) -> RunResult:
        work_dir = Path(self.config.work_dir)
        if not work_dir.is_dir():
            raise PreconditionError(f"Work directory {work_dir} does not exist")

        try:
            source = SourceFile.open(source_path)
        except PreconditionError as e:
            if self.hint:
                raise PreconditionError(f"{e}. {self.hint}") from e
            raise

        logger.info(f"Checking for enough free space to split {source.path}")
        space = self.estimator.check(source.size, work_dir)
        if not space.sufficient:
            raise InsufficientSpaceError(space)
        logger.info("Free space check: Pass")

        self._enter(PipelineState.FINGERPRINTING)
        logger.info(f"Generating md5 fingerprint for {source.name}, this may take a while on large files ...")
        digest = await self.fingerprinter.fingerprint(source.path, record_dir=work_dir)
        source = replace(source, digest=digest)
        source_digest_path = digest_path(source.path, work_dir)

        self._enter(PipelineState.SPLITTING)
        parts = await self.chunker.split(source, self.config.chunk_size, work_dir)

        self._enter(PipelineState.FINGERPRINTING_PARTS)
        logger.info(f"Generating md5 fingerprint for {len(parts)} parts")
        fingerprinted = []
        for part in parts:
            fingerprinted.append(replace(part, digest=await self.fingerprinter.fingerprint(part.path)))
        parts = fingerprinted

        manifest = self.builder.build(source, parts)
        manifest_path = await self.builder.write(manifest, work_dir)
        self._enter(PipelineState.MANIFEST_BUILT)

        plan = self.planner.plan(self.config.mode, PlanContext(
            work_dir=work_dir,
            manifest_path=manifest_path,
            source_digest_path=source_digest_path,
            parts=parts
        ))
        self._enter(PipelineState.TRANSFER_PLANNED)

        report = await self.transfer(plan)
        self._enter(PipelineState.DONE)

        return RunResult(
            plan=plan,
            report=report,
            source=source,
            parts=parts,
            manifest_path=manifest_path,
            source_digest_path=source_digest_path,
            space=space
        )

    async def transfer(self, plan: TransferPlan) -> UploadReport:
        """Upload the plan one artifact at a time, in order"""
        report = UploadReport()
        if not plan.artifacts:
            return report

        if self.uploader is None:
            raise ValueError("No uploader configured for a plan with artifacts")

        for artifact in plan.artifacts:
            try:
                await self.uploader.upload(
                    artifact, self.config.uuid, self.config.case_ref, missing=plan.missing
                )
            except UploadError as e:
                logger.error(str(e))
                report.failed.append(e)
                if self.config.abort_on_upload_error:
                    raise
                continue
            report.uploaded.append(Path(artifact).name)

        return report
