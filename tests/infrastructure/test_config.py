"""Tests for engine configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from mcp_doctor.infrastructure.config import (
    BackupConfig,
    DoctorConfig,
    MonitorConfig,
    load_config_file,
    load_config_from_json,
)


class TestDefaults:
    def test_default_values(self) -> None:
        cfg = DoctorConfig()
        assert cfg.monitor.interval_seconds == 60.0
        assert cfg.backup.max_per_client == 10
        assert cfg.backup.staleness_hours == 24.0
        assert cfg.isolation.probe_timeout_seconds == 5.0
        assert cfg.advisor.enabled is False

    def test_data_dir_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MCP_DOCTOR_HOME", str(tmp_path))
        cfg = DoctorConfig()
        assert cfg.resolved_data_dir == tmp_path
        assert cfg.backup_dir == tmp_path / "backups"
        assert cfg.history_path == tmp_path / "repair-history.jsonl"

    def test_explicit_backup_directory(self, tmp_path: Path) -> None:
        cfg = DoctorConfig(backup=BackupConfig(directory=str(tmp_path / "b")))
        assert cfg.backup_dir == tmp_path / "b"


class TestValidation:
    def test_interval_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="interval_seconds"):
            MonitorConfig(interval_seconds=0).validate()

    def test_rotation_limit_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            BackupConfig(max_per_client=0).validate()


class TestLoading:
    def test_from_json_sections(self) -> None:
        cfg = load_config_from_json(
            '{"data_dir": "/tmp/d", "monitor": {"interval_seconds": 5}, "unknown": 1}'
        )
        assert cfg.data_dir == "/tmp/d"
        assert cfg.monitor.interval_seconds == 5

    def test_non_object_rejected(self) -> None:
        with pytest.raises(ValueError, match="object"):
            load_config_from_json("[1, 2]")

    def test_section_must_be_object(self) -> None:
        with pytest.raises(ValueError, match="section 'backup'"):
            load_config_from_json('{"backup": 3}')

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_config_file(tmp_path / "absent.json") == DoctorConfig()
        assert load_config_file(None) == DoctorConfig()

    def test_round_trip(self) -> None:
        cfg = DoctorConfig(monitor=MonitorConfig(interval_seconds=30))
        assert DoctorConfig.from_dict(cfg.to_dict()) == cfg
