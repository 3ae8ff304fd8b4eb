"""
Cloud metadata parsing for host backups.

Two collector documents live under ``<backup>/cloud_info``:
- cloud_metadata.xml: platform and instance type (OCI shape / Azure VM size)
- cloud_report.html: CPU core count, total memory, and fallbacks for the
  platform and instance type
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Tuple
import logging
import re
import xml.etree.ElementTree as ET

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"
UNKNOWN_QUANTITY = "?"

CLOUD_INFO_SUBDIR = "cloud_info"
METADATA_XML = "cloud_metadata.xml"
REPORT_HTML = "cloud_report.html"

_HTML_CORES = re.compile(r"<tr><td>CPU Cores</td><td>(\d+)")
_HTML_MEMORY = re.compile(r"<tr><td>Total Memory</td><td>(\d+(?:\.\d+)?)(Gi|Mi)?")
_HTML_HEADING = re.compile(r"<h2>([^<]+)")
_HTML_PLATFORM = re.compile(r"(Azure|AWS|OCI)")
_HTML_SHAPE = re.compile(r"<tr><td>(?:Shape|VM Size)</td><td>([a-zA-Z0-9._-]+)")


@dataclass
class CloudProfile:
    """Cloud placement and shape of a host."""
    platform: str = UNKNOWN
    instance_type: str = UNKNOWN
    vcpu_count: Optional[int] = None
    memory_gb: Optional[float] = None

    @property
    def is_oci(self) -> bool:
        return "OCI" in self.platform


def _clean(text: Optional[str]) -> str:
    """Collapse a metadata value to a single field-safe token."""
    if not text:
        return ""
    return " ".join(text.split()).replace("|", "/")


def _parse_metadata_xml(path: Path) -> Tuple[str, str]:
    platform, instance_type = UNKNOWN, UNKNOWN
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        logger.warning(f"Could not parse {path}: {e}")
        return platform, instance_type

    platform = _clean(root.findtext(".//platform")).replace("Microsoft Azure", "Azure") or UNKNOWN
    if "OCI" in platform:
        instance_type = _clean(root.findtext(".//oci_instance/shape")) or UNKNOWN
    elif "Azure" in platform:
        instance_type = _clean(root.findtext(".//vm_size")) or UNKNOWN
    logger.debug(f"From XML: Platform='{platform}', InstanceType='{instance_type}'")
    return platform, instance_type


def _parse_memory_gb(value: str, unit: Optional[str]) -> float:
    if unit == "Mi":
        return round(float(value) / 1024, 2)
    return float(value)


def parse_cloud_profile(backup_dir: Path) -> CloudProfile:
    """
    Build the cloud profile of a host backup.

    Either document may be missing; absent values stay at the
    ``Unknown`` / None sentinels.
    """
    info_dir = Path(backup_dir) / CLOUD_INFO_SUBDIR
    profile = CloudProfile()

    xml_path = info_dir / METADATA_XML
    if xml_path.is_file():
        profile.platform, profile.instance_type = _parse_metadata_xml(xml_path)

    html_path = info_dir / REPORT_HTML
    if html_path.is_file():
        html = html_path.read_text(encoding="utf-8", errors="replace")

        cores = _HTML_CORES.search(html)
        if cores:
            profile.vcpu_count = int(cores.group(1))

        memory = _HTML_MEMORY.search(html)
        if memory:
            profile.memory_gb = _parse_memory_gb(memory.group(1), memory.group(2))

        if profile.platform == UNKNOWN:
            for heading in _HTML_HEADING.findall(html):
                if "cloud" in heading.lower():
                    match = _HTML_PLATFORM.search(heading)
                    profile.platform = match.group(1) if match else _clean(heading)
                    logger.debug(f"Updated Platform from HTML: {profile.platform}")
                    break

        if profile.instance_type == UNKNOWN:
            shape = _HTML_SHAPE.search(html)
            if shape:
                profile.instance_type = shape.group(1)
                logger.debug(f"Updated Instance Type from HTML (Shape/VM Size): {profile.instance_type}")

    return profile


def apply_oci_ocpu_adjustment(profile: CloudProfile) -> CloudProfile:
    """
    Convert an OS-reported vCPU count to billable OCPUs on OCI.

    The collector reports the OS-level vCPU count, which is double the OCPU
    count OCI bills for. Remove this once the collector reads ``ocpus`` from
    instance metadata directly.
    """
    if profile.is_oci and profile.vcpu_count and profile.vcpu_count > 0:
        adjusted = replace(profile, vcpu_count=profile.vcpu_count // 2)
        logger.debug(
            f"Applied OCI OCPU adjustment. Original vCPU count: {profile.vcpu_count}, "
            f"corrected OCPU count: {adjusted.vcpu_count}"
        )
        return adjusted
    return profile
