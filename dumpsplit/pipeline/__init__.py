from .space import SpaceEstimator, SpaceCheck, estimate
from .fingerprint import Fingerprinter, Digest
from .chunker import Chunker, Part, SourceFile
from .manifest import ManifestBuilder, Manifest
from .planner import TransferPlanner, TransferPlan, PlanContext
from .runner import SplitPipeline, PipelineState, RunResult, UploadReport

__all__ = [
    'SpaceEstimator',
    'SpaceCheck',
    'estimate',
    'Fingerprinter',
    'Digest',
    'Chunker',
    'Part',
    'SourceFile',
    'ManifestBuilder',
    'Manifest',
    'TransferPlanner',
    'TransferPlan',
    'PlanContext',
    'SplitPipeline',
    'PipelineState',
    'RunResult',
    'UploadReport'
]
