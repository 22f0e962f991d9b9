"""Chooses which artifacts get uploaded, and in what order"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence
import logging

from ..config import TransferMode
from ..errors import MissingPartError
from .chunker import Part

logger = logging.getLogger(__name__)

_NAME_SEPARATORS = re.compile(r'[,\s]+')


def parse_names(raw) -> List[str]:
    """Split a comma/whitespace separated list of part names"""
    if isinstance(raw, str):
        raw = [raw]
    names = []
    for item in raw:
        names.extend(name for name in _NAME_SEPARATORS.split(item) if name)
    return names


@dataclass
class PlanContext:
    """Everything the planner may need from the current invocation"""
    work_dir: Path = Path('.')
    manifest_path: Optional[Path] = None
    source_digest_path: Optional[Path] = None
    parts: Sequence[Part] = ()
    requested: Sequence[str] = ()
    hint: Optional[str] = None


@dataclass
class TransferPlan:
    """
    Ordered artifacts for the transport
    missing=True routes them under the case's "missing" sub-path;
    manual lists what the operator has to move by hand after a dry run
    """
    mode: TransferMode
    artifacts: List[Path] = field(default_factory=list)
    missing: bool = False
    manual: List[Path] = field(default_factory=list)


class TransferPlanner:
    """Builds the transfer set for full, selective and dry-run modes"""

    def plan(self, mode: TransferMode, context: PlanContext) -> TransferPlan:
        if mode == TransferMode.SELECTIVE:
            return TransferPlan(
                mode=mode,
                artifacts=self._validate_requested(context),
                missing=True
            )

        artifacts = self._split_artifacts(context)

        if mode == TransferMode.DRY_RUN:
            return TransferPlan(mode=mode, artifacts=[], manual=artifacts)

        return TransferPlan(mode=mode, artifacts=artifacts)

    def _split_artifacts(self, context: PlanContext) -> List[Path]:
        """Manifest and source digest first so the receiver knows what to expect"""
        if context.manifest_path is None or context.source_digest_path is None:
            raise ValueError("A split plan needs the manifest and source digest paths")

        ordered = sorted(context.parts, key=lambda part: part.index)
        return [context.manifest_path, context.source_digest_path] + \
            [part.path for part in ordered]

    def _validate_requested(self, context: PlanContext) -> List[Path]:
        """All named parts must be readable, otherwise nothing is uploaded"""
        names = parse_names(context.requested)
        if not names:
            raise ValueError("No part names given for re-upload")

        resolved = []
        missing = []
        for name in names:
            path = Path(name)
            if not path.is_absolute():
                path = Path(context.work_dir) / path
            if path.is_file() and os.access(path, os.R_OK):
                resolved.append(path)
            else:
                missing.append(name)

        if missing:
            raise MissingPartError(missing, hint=context.hint)

        logger.debug(f"Validated {len(resolved)} parts for re-upload")
        return resolved


def describe(paths: Iterable[Path]) -> str:
    return ' '.join(Path(p).name for p in paths)
