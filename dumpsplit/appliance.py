"""
appliance.py - Best-effort probes of the local appliance

Works out the appliance UUID and the savecore directory so the operator
does not have to look them up. Every probe falls back quietly: an unknown
UUID must then be supplied with -u.
"""

import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional
import logging

from .config import UNKNOWN

logger = logging.getLogger(__name__)

# 5.x appliances
NEF_CONFIG = Path("/usr/nef/cli/sbin/config")
# 3.x and 4.x appliances
NLM_KEY = Path("/var/lib/nza/nlm.key")

PROBE_TIMEOUT = 30  # seconds


def _run(command) -> Optional[str]:
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=PROBE_TIMEOUT,
            check=True
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"{command[0]} failed: {e}")
        return None
    return result.stdout


def uuid_from_nef(config_cmd: Path = NEF_CONFIG) -> Optional[str]:
    """system.guid as reported by the NEF config CLI (third column)"""
    if not (config_cmd.is_file() and os.access(config_cmd, os.X_OK)):
        return None

    output = _run([str(config_cmd), "get", "-O", "basic", "value", "system.guid"])
    if not output:
        return None

    for line in output.splitlines():
        fields = line.split()
        if len(fields) >= 3:
            return fields[2]
    return None


def uuid_from_license(nlm_key: Path = NLM_KEY) -> Optional[str]:
    """Third dash-separated field of the licence key"""
    if not (nlm_key.is_file() and os.access(nlm_key, os.R_OK)):
        return None

    try:
        content = nlm_key.read_text().strip()
    except OSError as e:
        logger.debug(f"Could not read {nlm_key}: {e}")
        return None

    fields = content.split('-')
    if len(fields) < 3 or not fields[2].strip():
        return None
    return fields[2].strip()


def detect_uuid(config_cmd: Path = NEF_CONFIG, nlm_key: Path = NLM_KEY) -> str:
    """
    UUID of this appliance, or UNKNOWN
    The licence key wins over the NEF CLI when both are present
    """
    uuid = uuid_from_license(nlm_key) or uuid_from_nef(config_cmd) or UNKNOWN
    if uuid != UNKNOWN:
        logger.info(f"Automatically determined UUID = {uuid}")
    return uuid


def savecore_dir() -> Optional[str]:
    """Savecore directory from dumpadm(1M), None when not available"""
    dumpadm = shutil.which("dumpadm")
    if dumpadm is None:
        return None

    output = _run([dumpadm])
    if not output:
        return None

    for line in output.splitlines():
        if 'Savecore directory' in line and ':' in line:
            return line.split(':', 1)[1].strip() or None
    return None


def missing_file_hint(directory: Optional[str] = None) -> str:
    """Operator hint printed when an input file or part cannot be found"""
    directory = directory if directory is not None else savecore_dir()
    if directory:
        return (
            "If this is for a kernel dump, have you changed directory to where "
            f"the parts have been split, for example {directory} ?"
        )
    return "Have you changed directory to where the parts have been split?"
