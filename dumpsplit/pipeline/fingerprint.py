"""MD5 fingerprints for the source file and every part"""

import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import logging

import aiofiles

logger = logging.getLogger(__name__)

DIGEST_SUFFIX = ".md5"


@dataclass(frozen=True)
class Digest:
    """Checksum bound to one named artifact"""
    name: str
    value: str
    algorithm: str = "md5"

    @property
    def line(self) -> str:
        """md5sum(1) formatted record, checkable with `md5sum -c`"""
        return f"{self.value}  {self.name}"

    @classmethod
    def from_line(cls, line: str) -> 'Digest':
        """Parse '<hex>  <name>' (or the binary-mode '<hex> *<name>')"""
        parts = line.strip().split(None, 1)
        if len(parts) != 2:
            raise ValueError(f"Malformed digest record: {line!r}")
        value, name = parts
        return cls(name=name.lstrip('*'), value=value.lower())


def digest_path(artifact: Path, record_dir: Optional[Path] = None) -> Path:
    """Where the sibling digest record of an artifact lives"""
    artifact = Path(artifact)
    directory = Path(record_dir) if record_dir is not None else artifact.parent
    return directory / (artifact.name + DIGEST_SUFFIX)


class Fingerprinter:
    """Computes and persists artifact digests"""

    BLOCK_SIZE = 1024 * 1024  # 1MB

    def __init__(self, block_size: int = BLOCK_SIZE):
        self.block_size = block_size

    async def digest(self, path: Path) -> Digest:
        """Digest of the bytes currently in path"""
        path = Path(path)
        hasher = hashlib.md5()
        async with aiofiles.open(path, 'rb') as f:
            while chunk := await f.read(self.block_size):
                hasher.update(chunk)

        return Digest(name=path.name, value=hasher.hexdigest())

    async def fingerprint(self, path: Path, record_dir: Optional[Path] = None) -> Digest:
        """
        Digest an artifact and write its .md5 record
        The record goes next to the artifact unless record_dir is given
        """
        digest = await self.digest(path)
        record = digest_path(path, record_dir)

        async with aiofiles.open(record, 'w') as f:
            await f.write(digest.line + "\n")

        logger.debug(f"{digest.line} -> {record}")
        return digest

    async def read_record(self, record: Path) -> Digest:
        async with aiofiles.open(record, 'r') as f:
            content = await f.read()
        lines = [line for line in content.splitlines() if line.strip()]
        if len(lines) != 1:
            raise ValueError(f"Expected one digest record in {record}, found {len(lines)}")
        return Digest.from_line(lines[0])

    async def verify(self, path: Path, record: Optional[Path] = None) -> bool:
        """Recompute the digest of path and compare with its stored record"""
        path = Path(path)
        stored = await self.read_record(record or digest_path(path))
        current = await self.digest(path)

        if stored.value != current.value:
            logger.warning(
                f"Digest mismatch for {path}: stored {stored.value}, "
                f"computed {current.value}"
            )
            return False
        return True
