"""
Tests for host inventory, cloud metadata and storage parsing

Run with: pytest tests/test_inventory.py -v
"""

from datetime import date

import pytest

from capacity_planner.inventory import (
    CloudProfile,
    HostBackup,
    HostSkipped,
    StorageMount,
    apply_oci_ocpu_adjustment,
    check_sysstat,
    convert_to_gb,
    detect_memory_mode,
    discover_host_dirs,
    latest_backup,
    parse_cloud_profile,
    parse_storage_snapshot,
    resolve_host_dir,
    storage_status,
)
from capacity_planner.inventory.hosts import parse_backup_date
from capacity_planner.reducer import MemoryMode

from conftest import DF_TEXT, METADATA_XML, REPORT_HTML, days_ago, write_backup


# ============================================================================
# Host Discovery Tests
# ============================================================================

class TestHostDiscovery:
    """Tests for host directories and backups."""

    def test_hosts_sorted_by_name(self, data_root):
        for name in ("web02", "app01", "db01"):
            (data_root / name).mkdir()
        (data_root / "notes.txt").write_text("not a host")

        assert [p.name for p in discover_host_dirs(data_root)] == ["app01", "db01", "web02"]

    def test_resolve_host_dir(self, data_root):
        (data_root / "web01").mkdir()

        assert resolve_host_dir(data_root, "web01") == data_root / "web01"

    @pytest.mark.parametrize("hostname", ["../mnt", "web01/..", "/etc", ".", "..", "", "ghost01"])
    def test_resolve_host_dir_rejects(self, data_root, hostname):
        """Only existing directories directly under the data root resolve."""
        (data_root / "web01").mkdir()

        with pytest.raises(FileNotFoundError):
            resolve_host_dir(data_root, hostname)

    def test_latest_backup_by_mtime(self, data_root):
        """The most recently modified snapshot wins, regardless of its name."""
        write_backup(data_root, backup="backup_20240201", mtime=days_ago(10))
        write_backup(data_root, backup="backup_20240105", mtime=days_ago(1))

        backup = latest_backup(data_root / "web01")

        assert backup.path.name == "backup_20240105"
        assert backup.backup_date == date(2024, 1, 5)

    def test_no_backups_skips_host(self, data_root):
        (data_root / "web01").mkdir()

        with pytest.raises(HostSkipped) as excinfo:
            latest_backup(data_root / "web01")
        assert excinfo.value.hostname == "web01"
        assert "backup_" in excinfo.value.reason

    @pytest.mark.parametrize("name,expected", [
        ("backup_20240110", date(2024, 1, 10)),
        ("backup_20241310", None),
        ("backup_latest", None),
    ])
    def test_parse_backup_date(self, name, expected):
        assert parse_backup_date(name) == expected

    def test_staleness(self, tmp_path):
        """Stale means strictly older than the threshold."""
        backup = HostBackup("web01", tmp_path, date(2024, 1, 1))

        assert not backup.is_stale(date(2024, 1, 8), threshold_days=7)
        assert backup.is_stale(date(2024, 1, 9), threshold_days=7)
        assert not HostBackup("web01", tmp_path, None).is_stale(date(2024, 6, 1))

    def test_sysstat_missing(self, tmp_path):
        backup = write_backup(tmp_path, sysstat_status="sysstat.service could not be found.\n")

        with pytest.raises(HostSkipped):
            check_sysstat("web01", backup)

    def test_sysstat_present(self, tmp_path):
        backup = write_backup(tmp_path, sysstat_status="active (running)\n")
        check_sysstat("web01", backup)

    @pytest.mark.parametrize("release,expected", [
        ("Red Hat Enterprise Linux release 9.2 (Plow)", MemoryMode.MODERN),
        ("Red Hat Enterprise Linux Server release 7.9 (Maipo)", MemoryMode.LEGACY),
        (None, MemoryMode.LEGACY),
    ])
    def test_memory_mode(self, tmp_path, release, expected):
        backup = write_backup(tmp_path, os_release=release)

        assert detect_memory_mode(backup) == expected


# ============================================================================
# Cloud Metadata Tests
# ============================================================================

class TestCloudProfile:
    """Tests for cloud metadata parsing."""

    def test_aws_from_html_fallback(self, tmp_path, aws_profile_files):
        xml, html = aws_profile_files
        backup = write_backup(tmp_path, metadata_xml=xml, report_html=html)
        profile = parse_cloud_profile(backup)

        assert profile.platform == "AWS"
        assert profile.instance_type == "m5.large"
        assert profile.vcpu_count == 4
        assert profile.memory_gb == 16.0

    def test_azure_vm_size_from_xml(self, tmp_path):
        xml = METADATA_XML.format(platform="Microsoft Azure", shape="", vm_size="Standard_D4s_v3")
        backup = write_backup(tmp_path, metadata_xml=xml)
        profile = parse_cloud_profile(backup)

        assert profile.platform == "Azure"
        assert profile.instance_type == "Standard_D4s_v3"
        assert profile.vcpu_count is None

    def test_oci_shape_and_memory_in_mebibytes(self, tmp_path):
        xml = METADATA_XML.format(platform="OCI", shape="VM.Standard.E4.Flex", vm_size="")
        html = REPORT_HTML.format(
            heading="OCI Cloud Instance", cores=8, memory="32768Mi", shape_label="Shape", shape="ignored",
        )
        backup = write_backup(tmp_path, metadata_xml=xml, report_html=html)
        profile = parse_cloud_profile(backup)

        assert profile.instance_type == "VM.Standard.E4.Flex"
        assert profile.memory_gb == 32.0
        assert profile.is_oci

    def test_platform_from_heading(self, tmp_path):
        html = REPORT_HTML.format(
            heading="Azure Cloud VM", cores=2, memory="8Gi", shape_label="VM Size", shape="Standard_B2s",
        )
        backup = write_backup(tmp_path, report_html=html)
        profile = parse_cloud_profile(backup)

        assert profile.platform == "Azure"
        assert profile.instance_type == "Standard_B2s"

    def test_no_metadata(self, tmp_path):
        profile = parse_cloud_profile(write_backup(tmp_path))

        assert profile == CloudProfile()

    def test_oci_adjustment_halves_cores(self):
        """OS-reported vCPUs are twice the billable OCPUs on OCI."""
        profile = CloudProfile(platform="OCI", instance_type="VM.Standard.E4.Flex", vcpu_count=8)
        adjusted = apply_oci_ocpu_adjustment(profile)

        assert adjusted.vcpu_count == 4
        assert profile.vcpu_count == 8

    @pytest.mark.parametrize("profile", [
        CloudProfile(platform="AWS", vcpu_count=8),
        CloudProfile(platform="OCI", vcpu_count=None),
        CloudProfile(platform="OCI", vcpu_count=0),
    ])
    def test_oci_adjustment_not_applied(self, profile):
        assert apply_oci_ocpu_adjustment(profile) == profile


# ============================================================================
# Storage Tests
# ============================================================================

class TestStorage:
    """Tests for df snapshot parsing."""

    @pytest.mark.parametrize("size,expected", [
        ("500G", 500.0),
        ("1.0T", 1024.0),
        ("512M", 0.5),
        ("0", 0.0),
        ("", 0.0),
    ])
    def test_convert_to_gb(self, size, expected):
        assert convert_to_gb(size) == expected

    def test_filters_system_and_network_mounts(self, tmp_path):
        backup = write_backup(tmp_path, df_text=DF_TEXT)
        mounts = parse_storage_snapshot(backup)

        assert [m.mount_point for m in mounts] == ["/u01", "/u02", "/u03"]

    def test_storage_status(self, tmp_path):
        backup = write_backup(tmp_path, df_text=DF_TEXT)
        statuses = {m.mount_point: storage_status(m) for m in parse_storage_snapshot(backup)}

        assert statuses == {
            "/u01": "Nearing Capacity",
            "/u02": "Underutilized",
            "/u03": None,
        }

    def test_mid_range_volume_needs_no_attention(self):
        assert storage_status(StorageMount("/data", "300G", "180G", 60.0)) is None

    def test_missing_snapshot(self, tmp_path):
        assert parse_storage_snapshot(write_backup(tmp_path)) == []
