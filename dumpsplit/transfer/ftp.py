"""FTP upload to the support log collectors"""

import asyncio
import ftplib
from pathlib import Path
from typing import Callable, List
from urllib.parse import urlparse
import logging

from ..errors import UploadError

logger = logging.getLogger(__name__)

MISSING_DIR = "missing"


class FtpUploader:
    """
    Stores artifacts under <endpoint>/<remote_root>/<uuid>/<case>[/missing]/
    Remote directories are created as needed; re-storing a file overwrites it
    """

    BLOCK_SIZE = 256 * 1024
    TIMEOUT = 120  # seconds

    def __init__(self, endpoint: str, remote_root: str = "nstor",
                 timeout: float = TIMEOUT,
                 ftp_factory: Callable[[], ftplib.FTP] = ftplib.FTP):
        parsed = urlparse(endpoint)
        if parsed.scheme != 'ftp' or not parsed.hostname:
            raise ValueError(f"Unsupported upload endpoint: {endpoint}")

        self.endpoint = endpoint.rstrip('/')
        self.host = parsed.hostname
        self.port = parsed.port or ftplib.FTP_PORT
        self.user = parsed.username or 'anonymous'
        self.password = parsed.password or 'anonymous@'
        self.base_dirs = [p for p in parsed.path.split('/') if p]
        self.remote_root = remote_root
        self.timeout = timeout
        self.ftp_factory = ftp_factory

    def remote_dirs(self, uuid: str, case: str, missing: bool = False) -> List[str]:
        dirs = self.base_dirs + [self.remote_root, uuid, case]
        if missing:
            dirs.append(MISSING_DIR)
        return [d for d in dirs if d]

    def destination(self, name: str, uuid: str, case: str, missing: bool = False) -> str:
        """Full URL an artifact ends up at"""
        base = f"ftp://{self.host}" if self.port == ftplib.FTP_PORT \
            else f"ftp://{self.host}:{self.port}"
        return '/'.join([base] + self.remote_dirs(uuid, case, missing) + [name])

    async def upload(self, path: Path, uuid: str, case: str, missing: bool = False) -> str:
        """Upload one artifact; raises UploadError naming artifact and destination"""
        path = Path(path)
        destination = self.destination(path.name, uuid, case, missing)
        logger.info(f"Uploading {path.name}")

        try:
            await asyncio.to_thread(self._store, path, self.remote_dirs(uuid, case, missing))
        except (OSError, EOFError, ftplib.Error) as e:
            raise UploadError(path.name, destination, e) from e

        logger.debug(f"Stored {path.name} at {destination}")
        return destination

    def _store(self, path: Path, dirs: List[str]):
        ftp = self.ftp_factory()
        try:
            ftp.connect(self.host, self.port, timeout=self.timeout)
            ftp.login(self.user, self.password)
            self._ensure_dirs(ftp, dirs)
            with open(path, 'rb') as f:
                ftp.storbinary(f"STOR {path.name}", f, blocksize=self.BLOCK_SIZE)
        finally:
            self._close(ftp)

    def _ensure_dirs(self, ftp: ftplib.FTP, dirs: List[str]):
        for directory in dirs:
            try:
                ftp.cwd(directory)
            except ftplib.error_perm:
                logger.debug(f"Creating remote directory {directory}")
                ftp.mkd(directory)
                ftp.cwd(directory)

    def _close(self, ftp: ftplib.FTP):
        try:
            ftp.quit()
        except (OSError, EOFError, ftplib.Error):
            ftp.close()
