"""
Shared fixtures: synthetic host backups written into tmp_path.

A backup looks like what the collector leaves on the share:

    <root>/<hostname>/backup_YYYYMMDD/
        sar_data/cpu_day<k>.txt, mem_day<k>.txt, sysstat_status.txt
        cloud_info/cloud_metadata.xml, cloud_report.html
        instance_metadata.txt
        df_h.txt
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union
import os
import time

import pytest


CPU_HEADER = ["CPU", "%user", "%nice", "%system", "%iowait", "%steal", "%idle"]
MEM_HEADER = ["kbmemfree", "kbavail", "kbmemused", "%memused", "kbbuffers", "kbcached"]


def sar_text(header: Sequence[str], rows: Sequence[Sequence], host: str = "web01") -> str:
    """Render a SAR export: banner, header row, timestamped samples, Average line."""
    lines = [
        f"Linux 5.14.0-362.el9.x86_64 ({host}) \t01/10/2024 \t_x86_64_\t(4 CPU)",
        "",
        "00:00:01    " + "    ".join(header),
    ]
    for i, row in enumerate(rows):
        values = "    ".join(v if isinstance(v, str) else f"{v:.2f}" for v in row)
        lines.append(f"00:{10 + i:02d}:01    {values}")
    lines.append("Average:    " + "    ".join("0.00" for _ in header))
    return "\n".join(lines) + "\n"


def cpu_text(samples: Sequence[Sequence]) -> str:
    """samples: (%user, %system, %idle) triples."""
    return sar_text(CPU_HEADER, [["all", u, 0.0, s, 0.0, 0.0, idle] for u, s, idle in samples])


def legacy_mem_text(samples: Sequence[Sequence]) -> str:
    """samples: (kbmemfree, kbmemused, kbavail) triples."""
    return sar_text(MEM_HEADER, [[free, avail, used, 0.0, 0.0, 0.0] for free, used, avail in samples])


def modern_mem_text(percents: Sequence[float]) -> str:
    return sar_text(MEM_HEADER, [[0.0, 0.0, 0.0, pct, 0.0, 0.0] for pct in percents])


METADATA_XML = """<?xml version="1.0"?>
<cloud_metadata>
  <platform>{platform}</platform>
  <oci_instance><shape>{shape}</shape></oci_instance>
  <vm_size>{vm_size}</vm_size>
</cloud_metadata>
"""

REPORT_HTML = """<html><body>
<h2>{heading}</h2>
<table>
<tr><td>CPU Cores</td><td>{cores}</td></tr>
<tr><td>Total Memory</td><td>{memory}</td></tr>
<tr><td>{shape_label}</td><td>{shape}</td></tr>
</table>
</body></html>
"""

DF_TEXT = """Filesystem                 Size  Used Avail Use% Mounted on
devtmpfs                   7.8G     0  7.8G   0% /dev
tmpfs                      7.8G     0  7.8G   0% /dev/shm
/dev/mapper/rootvg-rootlv   20G  8.0G   12G  40% /
/dev/sda1                  1014M  300M  715M  30% /boot
/dev/mapper/datavg-u01     500G  450G   50G  90% /u01
/dev/mapper/datavg-u02     1.0T  200G  824G  20% /u02
/dev/mapper/datavg-u03     100G   10G   90G  10% /u03
nfs01:/export/share        2.0T  1.0T  1.0T  50% /mnt/share
"""


def write_backup(
    root: Path,
    hostname: str = "web01",
    backup: str = "backup_20240110",
    cpu_days: Optional[Dict[int, Union[str, List]]] = None,
    mem_days: Optional[Dict[int, Union[str, List]]] = None,
    os_release: Optional[str] = None,
    metadata_xml: Optional[str] = None,
    report_html: Optional[str] = None,
    df_text: Optional[str] = None,
    sysstat_status: Optional[str] = None,
    mtime: Optional[float] = None,
) -> Path:
    """
    Write one backup directory and return its path.

    ``cpu_days`` / ``mem_days`` map day number to either raw file text or a
    sample list (CPU triples, legacy memory triples).
    """
    backup_dir = Path(root) / hostname / backup
    sar_dir = backup_dir / "sar_data"
    sar_dir.mkdir(parents=True, exist_ok=True)

    for day, content in (cpu_days or {}).items():
        text = content if isinstance(content, str) else cpu_text(content)
        (sar_dir / f"cpu_day{day}.txt").write_text(text)
    for day, content in (mem_days or {}).items():
        text = content if isinstance(content, str) else legacy_mem_text(content)
        (sar_dir / f"mem_day{day}.txt").write_text(text)
    if sysstat_status is not None:
        (sar_dir / "sysstat_status.txt").write_text(sysstat_status)

    if os_release is not None:
        (backup_dir / "instance_metadata.txt").write_text(
            f"hostname: {hostname}\nos_version: {os_release}\n"
        )

    if metadata_xml is not None or report_html is not None:
        info_dir = backup_dir / "cloud_info"
        info_dir.mkdir(exist_ok=True)
        if metadata_xml is not None:
            (info_dir / "cloud_metadata.xml").write_text(metadata_xml)
        if report_html is not None:
            (info_dir / "cloud_report.html").write_text(report_html)

    if df_text is not None:
        (backup_dir / "df_h.txt").write_text(df_text)

    if mtime is not None:
        os.utime(backup_dir, (mtime, mtime))
    return backup_dir


@pytest.fixture
def data_root(tmp_path):
    root = tmp_path / "mnt"
    root.mkdir()
    return root


@pytest.fixture
def pricing_csv(tmp_path):
    path = tmp_path / "pricing.csv"
    path.write_text(
        "instance_type,cost_per_hour\n"
        "m5.medium,0.05\n"
        "m5.large,0.10\n"
        "m5.xlarge,0.20\n"
        "VM.Standard.E4.Flex,0.025\n"
    )
    return path


@pytest.fixture
def family_csv(tmp_path):
    path = tmp_path / "instance_families.csv"
    path.write_text(
        "instance_type,family,size,next_up,next_down\n"
        "m5.medium,m5,medium,m5.large,\n"
        "m5.large,m5,large,m5.xlarge,m5.medium\n"
        "m5.xlarge,m5,xlarge,,m5.large\n"
    )
    return path


@pytest.fixture
def aws_profile_files():
    """Metadata documents describing a 4 core / 16 GB m5.large."""
    xml = METADATA_XML.format(platform="AWS", shape="", vm_size="")
    html = REPORT_HTML.format(
        heading="AWS Cloud Instance", cores=4, memory="16Gi", shape_label="Shape", shape="m5.large",
    )
    return xml, html


def days_ago(days: int) -> float:
    return time.time() - days * 86400
