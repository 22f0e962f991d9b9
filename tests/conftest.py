"""Pytest configuration and fixtures"""

import ftplib
import os
import pytest
import tempfile
import shutil
from pathlib import Path

from dumpsplit.config import SplitterConfig, TransferMode
from dumpsplit.errors import UploadError


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def temp_work_dir():
    """Create temporary directory for parts and metadata"""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def make_file(temp_dir):
    """Write a file of pseudo-random bytes into temp_dir"""
    def _make(name="vmdump.0", size=0, data=None):
        path = temp_dir / name
        if data is None:
            data = os.urandom(size)
        path.write_bytes(data)
        return path
    return _make


@pytest.fixture
def base_config(temp_work_dir):
    """Config with identity and case set, splitting into 1KB parts"""
    return SplitterConfig(
        case_ref="00555010",
        uuid="5F7J2FABC",
        mode=TransferMode.FULL,
        chunk_size=1024,
        work_dir=temp_work_dir
    )


class FakeFTP:
    """In-memory stand-in for ftplib.FTP"""

    def __init__(self, server):
        self.server = server
        self.cwd_path = []

    def connect(self, host, port, timeout=None):
        self.server.connections.append((host, port))
        if self.server.refuse:
            raise ConnectionRefusedError("connection refused")

    def login(self, user, password):
        self.server.logins.append(user)

    def cwd(self, directory):
        path = tuple(self.cwd_path + [directory])
        if path not in self.server.dirs:
            raise ftplib.error_perm(f"550 {directory}: No such file or directory")
        self.cwd_path.append(directory)

    def mkd(self, directory):
        self.server.dirs.add(tuple(self.cwd_path + [directory]))

    def storbinary(self, command, f, blocksize=8192):
        name = command.split(' ', 1)[1]
        if name in self.server.fail_names:
            raise ftplib.error_temp(f"451 {name}: transfer aborted")
        self.server.files['/'.join(self.cwd_path + [name])] = f.read()

    def quit(self):
        pass

    def close(self):
        pass


class FakeFTPServer:
    """Records what FakeFTP sessions did"""

    def __init__(self):
        self.dirs = set()
        self.files = {}
        self.connections = []
        self.logins = []
        self.fail_names = set()
        self.refuse = False

    def factory(self):
        return FakeFTP(self)


@pytest.fixture
def ftp_server():
    return FakeFTPServer()


class RecordingUploader:
    """Uploader double that remembers calls in order"""

    def __init__(self, fail_names=()):
        self.calls = []
        self.fail_names = set(fail_names)

    async def upload(self, path, uuid, case, missing=False):
        name = Path(path).name
        destination = f"ftp://example/nstor/{uuid}/{case}{'/missing' if missing else ''}/{name}"
        self.calls.append((name, uuid, case, missing))
        if name in self.fail_names:
            raise UploadError(name, destination, "451 transfer aborted")
        return destination


@pytest.fixture
def uploader():
    return RecordingUploader()


@pytest.fixture
def make_uploader():
    """Build uploader doubles that fail for the given artifact names"""
    return RecordingUploader
