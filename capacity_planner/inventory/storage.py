"""
Storage snapshot parsing (``df -h`` output captured with each backup).

Network and virtual filesystems and OS / application mount points are
filtered out; what remains is data volumes worth a capacity review.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
import logging
import re

logger = logging.getLogger(__name__)

DF_FILE = "df_h.txt"

VIRTUAL_FILESYSTEMS = {"devtmpfs", "tmpfs"}
EXCLUDED_MOUNT_PREFIXES = ("/boot", "/run", "/var", "/opt", "/usr", "/pool")

# Capacity review thresholds
MIN_PROVISIONED_GB = 200
NEARING_CAPACITY_PERCENT = 85
UNDERUTILIZED_PERCENT = 50

_UNIT_FACTORS = {
    "K": 1 / (1024 * 1024),
    "M": 1 / 1024,
    "G": 1,
    "T": 1024,
    "P": 1024 * 1024,
}
_SIZE = re.compile(r"^([0-9.]+)\s*([KkMmGgTtPp])")


@dataclass
class StorageMount:
    """One data volume from the snapshot."""
    mount_point: str
    size: str
    used: str
    used_percent: float

    @property
    def provisioned_gb(self) -> float:
        return convert_to_gb(self.size)

    @property
    def used_gb(self) -> float:
        return convert_to_gb(self.used)


def convert_to_gb(size: str) -> float:
    """Convert a human-readable ``df -h`` size such as ``2.5T`` to GB."""
    match = _SIZE.match(size.strip()) if size else None
    if not match:
        return 0.0
    try:
        value = float(match.group(1))
    except ValueError:
        return 0.0
    return round(value * _UNIT_FACTORS[match.group(2).upper()], 4)


def _is_excluded(filesystem: str, mount_point: str) -> bool:
    if ":" in filesystem or filesystem.startswith("//") or filesystem in VIRTUAL_FILESYSTEMS:
        return True
    if mount_point == "/":
        return True
    return mount_point.startswith(EXCLUDED_MOUNT_PREFIXES)


def parse_storage_snapshot(backup_dir: Path) -> List[StorageMount]:
    """Return the reviewable data volumes of a backup; empty when no snapshot exists."""
    path = Path(backup_dir) / DF_FILE
    if not path.is_file() or path.stat().st_size == 0:
        return []

    mounts = []
    lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    for line in lines[1:]:
        fields = line.split()
        if len(fields) < 6:
            continue
        filesystem, mount_point = fields[0], fields[-1]
        if _is_excluded(filesystem, mount_point):
            continue
        try:
            used_percent = float(fields[4].rstrip("%"))
        except ValueError:
            logger.warning(f"Unreadable use% '{fields[4]}' for {mount_point} in {path}")
            continue
        mounts.append(StorageMount(
            mount_point=mount_point,
            size=fields[1],
            used=fields[2],
            used_percent=used_percent,
        ))
    return mounts


def storage_status(mount: StorageMount) -> Optional[str]:
    """
    Capacity status of a volume, or None when it needs no attention.

    Small volumes are never reported.
    """
    if mount.provisioned_gb < MIN_PROVISIONED_GB:
        return None
    if mount.used_percent > NEARING_CAPACITY_PERCENT:
        return "Nearing Capacity"
    if mount.used_percent < UNDERUTILIZED_PERCENT:
        return "Underutilized"
    return None
