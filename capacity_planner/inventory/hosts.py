"""
Host inventory on the backup share.

Each host has a directory under the data root holding ``backup_YYYYMMDD``
snapshots. Only the most recent snapshot is analysed, and hosts whose most
recent snapshot is too old are reported as stale instead.
"""

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional
import logging
import re

from capacity_planner.reducer.sar import MemoryMode

logger = logging.getLogger(__name__)

STALE_THRESHOLD_DAYS = 7

KNOWN_NON_HOST_DIRS = frozenset({
    "logs", "oci_storage_dump", "backups", "capacity_planning",
    "retired_host_archive", "archive",
})

_BACKUP_DATE = re.compile(r"backup_(\d{8})")
_MODERN_RELEASE = re.compile(r"^os_version:.*release 9", re.MULTILINE)


class HostSkipped(Exception):
    """A host that cannot be analysed; carries the reason for the report."""

    def __init__(self, hostname: str, reason: str):
        super().__init__(f"{hostname}: {reason}")
        self.hostname = hostname
        self.reason = reason


@dataclass
class HostBackup:
    """Latest backup snapshot of a host."""
    hostname: str
    path: Path
    backup_date: Optional[date]

    def age_days(self, today: date) -> Optional[int]:
        if self.backup_date is None:
            return None
        return (today - self.backup_date).days

    def is_stale(self, today: date, threshold_days: int = STALE_THRESHOLD_DAYS) -> bool:
        age = self.age_days(today)
        return age is not None and age > threshold_days


def discover_host_dirs(data_root: Path) -> List[Path]:
    """Host directories directly under the data root, sorted by name."""
    return sorted(
        (p for p in Path(data_root).iterdir() if p.is_dir()),
        key=lambda p: p.name,
    )


def resolve_host_dir(data_root: Path, hostname: str) -> Path:
    """
    Directory of one named host directly under the data root.

    Raises:
        FileNotFoundError: the name is not a plain directory name, or no such
            directory exists under the data root
    """
    host_dir = Path(data_root) / hostname
    if not hostname or hostname in (".", "..") or Path(hostname).name != hostname:
        raise FileNotFoundError(f"Invalid host name: {hostname!r}")
    if not host_dir.is_dir():
        raise FileNotFoundError(f"No data directory found for host: {hostname} at path: {host_dir}")
    return host_dir


def parse_backup_date(name: str) -> Optional[date]:
    match = _BACKUP_DATE.search(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), "%Y%m%d").date()
    except ValueError:
        return None


def latest_backup(host_dir: Path) -> HostBackup:
    """
    Most recently modified ``backup_*`` directory of a host.

    Raises:
        HostSkipped: the directory holds no backup snapshots
    """
    host_dir = Path(host_dir)
    candidates = [p for p in host_dir.glob("backup_*") if p.is_dir()]
    if not candidates:
        raise HostSkipped(host_dir.name, "Not a valid host data directory (no 'backup_*' found)")

    newest = max(candidates, key=lambda p: p.stat().st_mtime)
    backup_date = parse_backup_date(newest.name)
    if backup_date is None:
        logger.warning(
            f"Could not determine backup date for {host_dir.name} from directory: {newest}. "
            f"Will proceed with analysis."
        )
    return HostBackup(hostname=host_dir.name, path=newest, backup_date=backup_date)


def check_sysstat(hostname: str, backup_dir: Path):
    """Raise HostSkipped when the collector reported sysstat as missing."""
    status_file = Path(backup_dir) / "sar_data" / "sysstat_status.txt"
    if status_file.is_file() and "could not be found" in status_file.read_text(errors="replace"):
        raise HostSkipped(hostname, "Sysstat service not found on host")


def detect_memory_mode(backup_dir: Path) -> MemoryMode:
    """RHEL 9 era hosts export %memused directly; older ones need the legacy derivation."""
    metadata = Path(backup_dir) / "instance_metadata.txt"
    if metadata.is_file() and _MODERN_RELEASE.search(metadata.read_text(errors="replace")):
        return MemoryMode.MODERN
    return MemoryMode.LEGACY
