from .cloud import (
    CloudProfile,
    parse_cloud_profile,
    apply_oci_ocpu_adjustment,
)
from .storage import (
    StorageMount,
    parse_storage_snapshot,
    storage_status,
    convert_to_gb,
)
from .hosts import (
    HostBackup,
    HostSkipped,
    discover_host_dirs,
    latest_backup,
    resolve_host_dir,
    check_sysstat,
    detect_memory_mode,
    KNOWN_NON_HOST_DIRS,
    STALE_THRESHOLD_DAYS,
)
__all__ = [
    "CloudProfile", "parse_cloud_profile", "apply_oci_ocpu_adjustment",
    "StorageMount", "parse_storage_snapshot", "storage_status", "convert_to_gb",
    "HostBackup", "HostSkipped", "discover_host_dirs", "latest_backup", "resolve_host_dir",
    "check_sysstat", "detect_memory_mode", "KNOWN_NON_HOST_DIRS",
    "STALE_THRESHOLD_DAYS",
]
