"""Free space check run before any split work"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
import logging

import psutil

logger = logging.getLogger(__name__)

CapacityProvider = Callable[[Path], Optional[int]]


def disk_free_bytes(directory: Path) -> Optional[int]:
    """Free bytes on the filesystem backing directory, None if unknown"""
    try:
        return psutil.disk_usage(str(directory)).free
    except OSError as e:
        logger.warning(f"Could not determine free space for {directory}: {e}")
        return None


def estimate(source_size: int, multiplier: float, available: Optional[int],
             slack: int = 0) -> bool:
    """
    True iff available >= source_size * multiplier + slack
    An unknown amount of free space is never sufficient
    """
    if available is None:
        return False
    return available >= required_bytes(source_size, multiplier, slack)


def required_bytes(source_size: int, multiplier: float, slack: int = 0) -> int:
    return int(source_size * multiplier) + slack


@dataclass(frozen=True)
class SpaceCheck:
    """Outcome of a free space check"""
    directory: Path
    source_size: int
    required: int
    available: Optional[int]
    sufficient: bool


class SpaceEstimator:
    """
    Decides whether the work directory can hold the split output

    The multiplier accounts for the original file staying on disk, the
    full set of parts, and headroom for digests and the manifest.
    """

    def __init__(self, multiplier: float = 3, slack: int = 0,
                 capacity_provider: CapacityProvider = disk_free_bytes):
        self.multiplier = multiplier
        self.slack = slack
        self.capacity_provider = capacity_provider

    def check(self, source_size: int, directory: Path) -> SpaceCheck:
        available = self.capacity_provider(Path(directory))
        result = SpaceCheck(
            directory=Path(directory),
            source_size=source_size,
            required=required_bytes(source_size, self.multiplier, self.slack),
            available=available,
            sufficient=estimate(source_size, self.multiplier, available, self.slack)
        )
        logger.debug(
            f"Space check for {directory}: required={result.required} "
            f"available={result.available} sufficient={result.sufficient}"
        )
        return result
