"""Run configuration for dumpsplit"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import logging

import yaml

from .errors import PreconditionError

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

AMER_UPLOAD_URL = "ftp://logcollector.nexenta.com"
EMEA_UPLOAD_URL = "ftp://logcollector04.nexenta.com"

ENDPOINTS: Dict[str, str] = {
    'AMER': AMER_UPLOAD_URL,
    'EMEA': EMEA_UPLOAD_URL,
}

DEFAULT_CHUNK_SIZE = "512m"
DEFAULT_MULTIPLIER = 3
DEFAULT_LOG_FILE = "dumpsplit.log"
CONFIG_ENV_VAR = "DUMPSPLIT_CONFIG"

# Binary multipliers, as split(1) interprets its -b suffixes
_SIZE_UNITS = {
    '': 1,
    'k': 1024,
    'm': 1024 ** 2,
    'g': 1024 ** 3,
    't': 1024 ** 4,
}
_SIZE_RE = re.compile(r'^\s*(\d+)\s*([kmgt]?)b?\s*$', re.IGNORECASE)

FILE_KEYS = {
    'endpoint',
    'endpoints',
    'chunk_size',
    'multiplier',
    'slack_bytes',
    'abort_on_upload_error',
    'log_file',
    'remote_root',
    'work_dir',
}


class TransferMode(Enum):
    """What happens to the artifacts after the local pipeline"""
    FULL = "full"
    SELECTIVE = "selective"
    DRY_RUN = "dry-run"


def parse_size(value) -> int:
    """
    Parse a part size such as '512m', '1024M', '2g' or '4096' into bytes
    Raises ValueError for malformed or non-positive sizes
    """
    if isinstance(value, int) and not isinstance(value, bool):
        size = value
    else:
        match = _SIZE_RE.match(str(value))
        if not match:
            raise ValueError(f"Invalid size '{value}', expected e.g. 512m or 1g")
        size = int(match.group(1)) * _SIZE_UNITS[match.group(2).lower()]

    if size <= 0:
        raise ValueError(f"Part size must be positive, got '{value}'")
    return size


def resolve_endpoint(name: str, endpoints: Optional[Dict[str, str]] = None) -> str:
    """Map a region name (AMER/EMEA) or a literal URL to an upload URL"""
    table = endpoints if endpoints is not None else ENDPOINTS
    if name.upper() in table:
        return table[name.upper()]
    if '://' in name:
        return name
    raise ValueError(f"Unknown endpoint '{name}', expected one of {sorted(table)}")


def load_config_file(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load default settings from a YAML file

    The path comes from the argument or the DUMPSPLIT_CONFIG environment
    variable. Returns an empty dict when neither is set.
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return {}
        path = Path(env_path)

    path = Path(path)
    with open(path, 'r') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Config file {path} is not valid YAML: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    unknown = set(data) - FILE_KEYS
    if unknown:
        raise ValueError(f"Unknown keys in {path}: {', '.join(sorted(unknown))}")

    logger.debug(f"Loaded settings from {path}: {sorted(data)}")
    return data


@dataclass(frozen=True)
class SplitterConfig:
    """Immutable settings for one invocation, built once from the CLI"""
    case_ref: str = UNKNOWN
    uuid: str = UNKNOWN
    endpoint: str = AMER_UPLOAD_URL
    mode: TransferMode = TransferMode.FULL
    chunk_size: int = 512 * 1024 * 1024
    multiplier: float = DEFAULT_MULTIPLIER
    slack_bytes: int = 0
    missing_parts: Tuple[str, ...] = field(default_factory=tuple)
    abort_on_upload_error: bool = False
    work_dir: Path = Path('.')
    remote_root: str = "nstor"

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.multiplier <= 0:
            raise ValueError(f"multiplier must be positive, got {self.multiplier}")
        if self.slack_bytes < 0:
            raise ValueError(f"slack_bytes must not be negative, got {self.slack_bytes}")

    def validate(self):
        """Both the case reference and the appliance UUID must be known"""
        if self.uuid == UNKNOWN or self.case_ref == UNKNOWN:
            raise PreconditionError("Unrecognised UUID or Case Reference number")
        if not self.uuid or not self.case_ref:
            raise PreconditionError("UUID and Case Reference number must not be empty")
