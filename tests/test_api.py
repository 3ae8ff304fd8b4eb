"""
Tests for the FastAPI service and its configuration

Run with: pytest tests/test_api.py -v
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from capacity_planner.config import Settings
from capacity_planner.main import app

from conftest import write_backup


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def service_env(monkeypatch, data_root, pricing_csv, family_csv, aws_profile_files, tmp_path):
    xml, html = aws_profile_files
    write_backup(
        data_root,
        hostname="cold01",
        cpu_days={d: [(10, 5, 80)] for d in range(1, 8)},
        mem_days={d: [(2000, 8000, 7000)] for d in range(1, 8)},
        metadata_xml=xml,
        report_html=html,
    )
    (data_root / "empty01").mkdir()

    trends_file = tmp_path / "weekly_summaries" / "historical_trends.csv"
    monkeypatch.setenv("CAPACITY_DATA_ROOT", str(data_root))
    monkeypatch.setenv("CAPACITY_TRENDS_FILE", str(trends_file))
    monkeypatch.setenv("CAPACITY_PRICING_FILE", str(pricing_csv))
    monkeypatch.setenv("CAPACITY_FAMILY_FILE", str(family_csv))
    return trends_file


@pytest.fixture
def client(service_env):
    with TestClient(app) as test_client:
        yield test_client


# ============================================================================
# Configuration Tests
# ============================================================================

class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch):
        for name in ("CAPACITY_DATA_ROOT", "CAPACITY_ANALYSIS_DAYS", "ML_SIDECAR_PORT", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings.from_env()

        assert settings.data_root == Path("/mnt")
        assert settings.analysis_days == 7
        assert settings.port == 8081
        assert settings.log_level == "INFO"

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("CAPACITY_ANALYSIS_DAYS", "14")
        monkeypatch.setenv("CAPACITY_STALE_DAYS", "3")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        settings = Settings.from_env()

        assert settings.analysis_days == 14
        assert settings.stale_days == 3
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize("name,value", [
        ("CAPACITY_ANALYSIS_DAYS", "seven"),
        ("CAPACITY_ANALYSIS_DAYS", "0"),
        ("ML_SIDECAR_PORT", "http"),
    ])
    def test_invalid_integers(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ValueError):
            Settings.from_env()


# ============================================================================
# Endpoint Tests
# ============================================================================

class TestEndpoints:
    """Tests for the HTTP surface."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "/analyze/fleet" in response.json()["endpoints"]

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["components"]["data_root"] == "ok"
        assert body["components"]["pricing"] == 4

    def test_classify_zone(self, client):
        response = client.post("/classify/zone", json={
            "avg_cpu": 25, "avg_mem": 35, "vcpu_count": 4, "memory_gb": 16, "peak_cpu": 40, "peak_mem": 40,
        })

        assert response.status_code == 200
        assert response.json() == {
            "zone": "cold", "recommendation": "downsize", "cpu_state": "cold", "mem_state": "cold",
        }

    def test_classify_zone_rejects_out_of_range(self, client):
        response = client.post("/classify/zone", json={"avg_cpu": 150, "avg_mem": 35})

        assert response.status_code == 422

    def test_model_cost(self, client):
        response = client.post("/model/cost", json={"instance_type": "m5.large", "recommendation": "downsize"})
        body = response.json()

        assert response.status_code == 200
        assert body["monthly_delta"] == 36.0
        assert body["target_instance_type"] == "m5.medium"

    def test_model_cost_unknown_recommendation(self, client):
        response = client.post("/model/cost", json={"instance_type": "m5.large", "recommendation": "shrink"})

        assert response.status_code == 400

    def test_analyze_host(self, client):
        response = client.post("/analyze/host", json={"hostname": "cold01"})
        body = response.json()

        assert response.status_code == 200
        assert body["zone"] == "cold"
        assert body["monthly_savings"] == 36.0
        assert body["row"].startswith("cold01|20.00|15.00|30.00|")

    def test_analyze_host_window_override(self, client):
        body = client.post("/analyze/host", json={"hostname": "cold01", "days": 3}).json()

        assert len(body["daily_cpu"]) == 3

    def test_analyze_host_not_found(self, client):
        response = client.post("/analyze/host", json={"hostname": "ghost01"})

        assert response.status_code == 404

    def test_analyze_host_without_backups(self, client):
        response = client.post("/analyze/host", json={"hostname": "empty01"})

        assert response.status_code == 422

    def test_analyze_fleet(self, client, service_env):
        response = client.post("/analyze/fleet", json={"today": "2024-01-12"})
        body = response.json()

        assert response.status_code == 200
        assert [r["hostname"] for r in body["records"]] == ["cold01"]
        assert body["skipped"][0]["hostname"] == "empty01"
        assert body["summary"]["cold"] == 1
        assert body["summary"]["potential_monthly_savings"] == 36.0
        assert body["trends"]["reference_date"] == "2023-12-13"
        assert service_env.exists()

    def test_analyze_fleet_unknown_host(self, client):
        response = client.post("/analyze/fleet", json={"host": "ghost01"})

        assert response.status_code == 404

    def test_analyze_host_outside_data_root(self, client, tmp_path):
        write_backup(tmp_path, hostname="outside", cpu_days={1: [(10, 5, 80)]})
        response = client.post("/analyze/host", json={"hostname": "../outside"})

        assert response.status_code == 404

    def test_analyze_fleet_outside_data_root(self, client, service_env, tmp_path):
        """A host name that leaves the data root is never analysed or recorded."""
        write_backup(tmp_path, hostname="outside", cpu_days={1: [(10, 5, 80)]})
        response = client.post("/analyze/fleet", json={"host": "../outside"})

        assert response.status_code == 404
        assert not service_env.exists()
