"""Splits a source file into ordered, fixed-size parts"""

import os
import string
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
import logging

import aiofiles

from ..errors import PreconditionError
from .fingerprint import Digest, DIGEST_SUFFIX

logger = logging.getLogger(__name__)

PART_INFIX = ".part"
MIN_SUFFIX_WIDTH = 2


@dataclass(frozen=True)
class SourceFile:
    """The file being split, read-only for the whole run"""
    path: Path
    size: int
    digest: Optional[Digest] = None

    @property
    def name(self) -> str:
        return self.path.name

    @classmethod
    def open(cls, path: Path) -> 'SourceFile':
        """Stat a readable regular file"""
        path = Path(path)
        if not path.is_file() or not os.access(path, os.R_OK):
            raise PreconditionError(f"Could not find {path} to upload")
        return cls(path=path, size=path.stat().st_size)


@dataclass(frozen=True)
class Part:
    """
    One contiguous byte range of the source
    The index fixes the order; the file name is derived from it
    """
    index: int
    path: Path
    offset: int
    size: int
    digest: Optional[Digest] = None

    @property
    def name(self) -> str:
        return self.path.name


def part_count(source_size: int, max_part_size: int) -> int:
    """ceil(source_size / max_part_size); zero for an empty source"""
    if max_part_size <= 0:
        raise ValueError(f"Part size must be positive, got {max_part_size}")
    return -(-source_size // max_part_size)


def part_sizes(source_size: int, max_part_size: int) -> List[int]:
    """Sizes of the parts a source of source_size bytes is split into"""
    count = part_count(source_size, max_part_size)
    return [min(max_part_size, source_size - index * max_part_size)
            for index in range(count)]


def suffix_width(count: int) -> int:
    """Letters needed so every index below count gets a same-width suffix"""
    width = MIN_SUFFIX_WIDTH
    while 26 ** width < count:
        width += 1
    return width


def part_suffix(index: int, width: int = MIN_SUFFIX_WIDTH) -> str:
    """
    Base-26 lowercase suffix in the style of split(1): 0 -> 'aa', 1 -> 'ab'
    Fixed width keeps lexicographic order equal to index order
    """
    if index < 0 or index >= 26 ** width:
        raise ValueError(f"Index {index} does not fit in {width} suffix letters")

    letters = []
    for _ in range(width):
        index, remainder = divmod(index, 26)
        letters.append(string.ascii_lowercase[remainder])
    return ''.join(reversed(letters))


def part_name(source_name: str, index: int, width: int = MIN_SUFFIX_WIDTH) -> str:
    return f"{source_name}{PART_INFIX}{part_suffix(index, width)}"


class Chunker:
    """Sequential reader that writes each part as its own file"""

    BUFFER_SIZE = 4 * 1024 * 1024  # 4MB

    def __init__(self, buffer_size: int = BUFFER_SIZE):
        self.buffer_size = buffer_size

    async def split(self, source: SourceFile, max_part_size: int,
                    output_dir: Optional[Path] = None) -> List[Part]:
        """
        Write ceil(size / max_part_size) parts into output_dir

        Every part holds exactly max_part_size bytes except possibly the
        last one. An empty source yields no parts.
        """
        sizes = part_sizes(source.size, max_part_size)
        output_dir = Path(output_dir) if output_dir is not None else source.path.parent
        width = suffix_width(len(sizes))

        if not sizes:
            logger.warning(f"{source.path} is empty, no parts will be created")
            return []

        logger.info(f"Splitting {source.name} into {len(sizes)} parts of up to {max_part_size} bytes")

        parts: List[Part] = []
        async with aiofiles.open(source.path, 'rb') as src:
            for index, size in enumerate(sizes):
                offset = index * max_part_size
                path = output_dir / part_name(source.name, index, width)

                await self._copy(src, path, size)
                parts.append(Part(index=index, path=path, offset=offset, size=size))
                logger.debug(f"Wrote {path.name} ({size} bytes at offset {offset})")

        self._warn_stale_parts(source, parts, output_dir)
        return parts

    async def _copy(self, src, target: Path, size: int):
        remaining = size
        async with aiofiles.open(target, 'wb') as dst:
            while remaining > 0:
                block = await src.read(min(self.buffer_size, remaining))
                if not block:
                    raise IOError(
                        f"Source ended early while writing {target.name}: "
                        f"{remaining} bytes short"
                    )
                await dst.write(block)
                remaining -= len(block)

    def _warn_stale_parts(self, source: SourceFile, parts: List[Part], output_dir: Path):
        """Leftover parts from an earlier run would confuse the receiver"""
        current = {part.name for part in parts}
        stale = sorted(
            p.name for p in output_dir.glob(f"{source.name}{PART_INFIX}*")
            if not p.name.endswith(DIGEST_SUFFIX) and p.name not in current
        )
        if stale:
            logger.warning(
                f"Found parts from an earlier run in {output_dir}, "
                f"remove them before uploading: {' '.join(stale)}"
            )
