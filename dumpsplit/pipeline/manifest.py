"""
pipeline/manifest.py - Split metadata record

The manifest (<source>.meta) is the receiver's only way to tell whether a
transfer is complete and intact. It is plain text with delimited sections
so both support engineers and scripts can read it:

    NUMBER_OF_PARTS: 3
    ### FILESIZE BEGIN ###
    vmdump.0  1500000000
    vmdump.0.partaa  536870912
    ...
    ### FILESIZE END ###
    ### MD5 FINGERPRINT BEGIN ###
    <hex>  vmdump.0
    <hex>  vmdump.0.partaa
    ...
    ### MD5 FINGERPRINT END ###
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence, Tuple
import logging

import aiofiles

from ..errors import ManifestError
from .chunker import Part, SourceFile
from .fingerprint import Digest

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = ".meta"
PART_COUNT_KEY = "NUMBER_OF_PARTS:"
FILESIZE_BEGIN = "### FILESIZE BEGIN ###"
FILESIZE_END = "### FILESIZE END ###"
DIGEST_BEGIN = "### MD5 FINGERPRINT BEGIN ###"
DIGEST_END = "### MD5 FINGERPRINT END ###"


@dataclass
class Manifest:
    """Part count, sizes and digests of one split run"""
    source_name: str
    part_count: int
    sizes: List[Tuple[str, int]] = field(default_factory=list)
    digests: List[Digest] = field(default_factory=list)

    @property
    def file_name(self) -> str:
        return self.source_name + MANIFEST_SUFFIX

    def render(self) -> str:
        lines = [f"{PART_COUNT_KEY} {self.part_count}", FILESIZE_BEGIN]
        lines.extend(f"{name}  {size}" for name, size in self.sizes)
        lines.append(FILESIZE_END)
        lines.append(DIGEST_BEGIN)
        lines.extend(digest.line for digest in self.digests)
        lines.append(DIGEST_END)
        return "\n".join(lines) + "\n"

    @classmethod
    def parse(cls, text: str) -> 'Manifest':
        """Read a manifest back using its BEGIN/END markers"""
        lines = [line.rstrip() for line in text.splitlines()]

        count_lines = [line for line in lines if line.startswith(PART_COUNT_KEY)]
        if len(count_lines) != 1:
            raise ManifestError(f"Expected one '{PART_COUNT_KEY}' line")
        try:
            part_count = int(count_lines[0][len(PART_COUNT_KEY):].strip())
        except ValueError as e:
            raise ManifestError(f"Bad part count: {count_lines[0]!r}") from e

        sizes = []
        for line in _section(lines, FILESIZE_BEGIN, FILESIZE_END):
            try:
                name, size = line.rsplit(None, 1)
                sizes.append((name.strip(), int(size)))
            except ValueError as e:
                raise ManifestError(f"Bad size line: {line!r}") from e

        try:
            digests = [Digest.from_line(line)
                       for line in _section(lines, DIGEST_BEGIN, DIGEST_END)]
        except ValueError as e:
            raise ManifestError(str(e)) from e

        if not sizes:
            raise ManifestError("Manifest lists no files")

        return cls(
            source_name=sizes[0][0],
            part_count=part_count,
            sizes=sizes,
            digests=digests
        )


def _section(lines: Sequence[str], begin: str, end: str) -> List[str]:
    try:
        start = lines.index(begin)
        stop = lines.index(end, start)
    except ValueError as e:
        raise ManifestError(f"Missing section markers {begin!r} / {end!r}") from e
    return [line for line in lines[start + 1:stop] if line.strip()]


class ManifestBuilder:
    """Builds the manifest once every digest exists"""

    def build(self, source: SourceFile, parts: Sequence[Part]) -> Manifest:
        if source.digest is None:
            raise ManifestError(f"{source.name} has not been fingerprinted")

        unfinished = [part.name for part in parts if part.digest is None]
        if unfinished:
            raise ManifestError(f"Parts without a digest: {', '.join(unfinished)}")

        indices = [part.index for part in parts]
        if indices != list(range(len(parts))):
            raise ManifestError(f"Parts out of sequence: {indices}")

        total = sum(part.size for part in parts)
        if total != source.size:
            raise ManifestError(
                f"Parts cover {total} bytes but {source.name} has {source.size}"
            )

        return Manifest(
            source_name=source.name,
            part_count=len(parts),
            sizes=[(source.name, source.size)] + [(p.name, p.size) for p in parts],
            digests=[source.digest] + [p.digest for p in parts]
        )

    async def write(self, manifest: Manifest, directory: Path) -> Path:
        """Write <source>.meta in one piece (temp file, then rename)"""
        target = Path(directory) / manifest.file_name
        temp = target.with_name(target.name + ".tmp")

        async with aiofiles.open(temp, 'w') as f:
            await f.write(manifest.render())
        os.replace(temp, target)

        logger.info(f"Wrote manifest {target} ({manifest.part_count} parts)")
        return target
