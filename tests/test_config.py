"""Tests for config loading and environment overrides."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from reclaim.core.config import GITHUB_API_URL, LaunchTemplate, ReclaimConfig, apply_env, load_config


class TestDefaults:
    def test_defaults(self):
        config = ReclaimConfig()
        assert config.environment == ""
        assert config.minimum_running_time_minutes == 5
        assert config.enable_organization_runners is False
        assert config.dry_run is False
        assert config.api_url == GITHUB_API_URL

    def test_ghes_api_url(self):
        config = ReclaimConfig(ghes_url="https://github.example.com/")
        assert config.api_url == "https://github.example.com/api/v3"

    def test_negative_minimum_rejected(self):
        with pytest.raises(ValidationError):
            ReclaimConfig(minimum_running_time_minutes=-1)


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        assert load_config(tmp_path / "nope.yaml") == ReclaimConfig()

    def test_none_path(self):
        assert load_config(None) == ReclaimConfig()

    def test_reads_section(self, tmp_path):
        path = tmp_path / "reclaim.yaml"
        path.write_text(
            "scale_down:\n"
            "  environment: prod\n"
            "  minimum_running_time_minutes: 15\n"
            "  enable_organization_runners: true\n"
            "  launch_templates:\n"
            "    linux: {name: lt-linux, version: '3'}\n"
        )
        config = load_config(path)
        assert config.environment == "prod"
        assert config.minimum_running_time_minutes == 15
        assert config.enable_organization_runners is True
        assert config.launch_templates["linux"] == LaunchTemplate(name="lt-linux", version="3")

    def test_unknown_keys_dropped(self, tmp_path, caplog):
        path = tmp_path / "reclaim.yaml"
        path.write_text("scale_down:\n  environment: prod\n  bogus: 1\n")
        with caplog.at_level("WARNING"):
            config = load_config(path)
        assert config.environment == "prod"
        assert "bogus" in caplog.text

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "reclaim.yaml"
        path.write_text("- a\n- b\n")
        assert load_config(path) == ReclaimConfig()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "reclaim.yaml"
        path.write_text("")
        assert load_config(path) == ReclaimConfig()


class TestApplyEnv:
    def test_no_env_returns_same_config(self):
        config = ReclaimConfig(environment="x")
        assert apply_env(config, {}) is config

    def test_overrides(self):
        config = apply_env(
            ReclaimConfig(environment="file"),
            {
                "ENVIRONMENT": "prod",
                "MINIMUM_RUNNING_TIME_IN_MINUTES": "20",
                "ENABLE_ORGANIZATION_RUNNERS": "true",
                "GHES_URL": "https://ghe.example.com",
                "GITHUB_APP_ID": "123",
                "GITHUB_APP_KEY_PATH": "/etc/app.pem",
                "DRY_RUN": "1",
                "SUBNET_IDS": "subnet-a, subnet-b,",
            },
        )
        assert config.environment == "prod"
        assert config.minimum_running_time_minutes == 20
        assert config.enable_organization_runners is True
        assert config.api_url == "https://ghe.example.com/api/v3"
        assert config.github_app_id == "123"
        assert config.github_app_key_path == Path("/etc/app.pem")
        assert config.dry_run is True
        assert config.subnet_ids == ["subnet-a", "subnet-b"]

    def test_false_flag(self):
        config = apply_env(ReclaimConfig(enable_organization_runners=True), {
            "ENABLE_ORGANIZATION_RUNNERS": "false",
        })
        assert config.enable_organization_runners is False

    def test_launch_templates(self):
        config = apply_env(
            ReclaimConfig(),
            {
                "LAUNCH_TEMPLATE_NAME_LINUX": "lt-linux",
                "LAUNCH_TEMPLATE_VERSION_LINUX": "7",
                "LAUNCH_TEMPLATE_NAME_WINDOWS": "lt-win",
            },
        )
        assert config.launch_templates["linux"] == LaunchTemplate(name="lt-linux", version="7")
        assert config.launch_templates["windows"] == LaunchTemplate(name="lt-win")

    def test_invalid_minimum(self):
        with pytest.raises(ValueError):
            apply_env(ReclaimConfig(), {"MINIMUM_RUNNING_TIME_IN_MINUTES": "soon"})
