"""Config loading utilities for runner-reclaim.

Configuration comes from an optional YAML file (``scale_down:`` section)
with environment variables layered on top, matching the variables the
scale-down Lambda was deployed with.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"


class LaunchTemplate(BaseModel):
    """Launch template reference for one runner OS."""

    name: str
    version: str = "$Latest"


class ReclaimConfig(BaseModel):
    """Configuration for a scale-down pass."""

    environment: str = ""
    minimum_running_time_minutes: int = Field(default=5, ge=0)
    enable_organization_runners: bool = False
    ghes_url: str | None = None
    aws_region: str | None = None
    github_app_id: str | None = None
    github_app_key_path: Path | None = None
    dry_run: bool = False
    interval_s: int = Field(default=300, gt=0)

    # Creation path only; carried so one config file serves both Lambdas
    subnet_ids: list[str] = Field(default_factory=list)
    launch_templates: dict[str, LaunchTemplate] = Field(default_factory=dict)

    @field_validator("ghes_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        if value:
            return value.rstrip("/")
        return None

    @property
    def api_url(self) -> str:
        """GitHub REST base URL, honouring a GitHub Enterprise Server override."""
        if self.ghes_url:
            return f"{self.ghes_url}/api/v3"
        return GITHUB_API_URL


def load_config(path: Path | None) -> ReclaimConfig:
    """Build a ReclaimConfig from the ``scale_down`` section of a YAML file.

    Returns defaults if *path* is None or doesn't exist. Unknown keys are
    dropped with a warning instead of failing validation.
    """
    if path is None or not path.exists():
        logger.debug("No config file at %s; using defaults", path)
        return ReclaimConfig()

    logger.info("Loading config from %s", path)
    with path.open() as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        logger.warning("%s did not contain a mapping; using defaults", path)
        return ReclaimConfig()

    section = data.get("scale_down", {})
    if not isinstance(section, dict):
        logger.warning("'scale_down' key is not a mapping; ignoring")
        section = {}

    valid_fields = ReclaimConfig.model_fields
    filtered = {k: v for k, v in section.items() if k in valid_fields}

    if dropped := set(section) - set(filtered):
        logger.warning("Ignoring unknown scale_down config keys: %s", sorted(dropped))

    return ReclaimConfig(**filtered)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def apply_env(config: ReclaimConfig, environ: Mapping[str, str] | None = None) -> ReclaimConfig:
    """Return a copy of *config* with environment variable overrides applied."""
    env = os.environ if environ is None else environ
    updates: dict[str, Any] = {}

    if "ENVIRONMENT" in env:
        updates["environment"] = env["ENVIRONMENT"]
    if "MINIMUM_RUNNING_TIME_IN_MINUTES" in env:
        updates["minimum_running_time_minutes"] = int(env["MINIMUM_RUNNING_TIME_IN_MINUTES"])
    if "ENABLE_ORGANIZATION_RUNNERS" in env:
        updates["enable_organization_runners"] = _parse_bool(env["ENABLE_ORGANIZATION_RUNNERS"])
    if env.get("GHES_URL"):
        updates["ghes_url"] = env["GHES_URL"]
    if env.get("AWS_REGION"):
        updates["aws_region"] = env["AWS_REGION"]
    if env.get("GITHUB_APP_ID"):
        updates["github_app_id"] = env["GITHUB_APP_ID"]
    if env.get("GITHUB_APP_KEY_PATH"):
        updates["github_app_key_path"] = Path(env["GITHUB_APP_KEY_PATH"])
    if "DRY_RUN" in env:
        updates["dry_run"] = _parse_bool(env["DRY_RUN"])
    if "SCALE_DOWN_INTERVAL_S" in env:
        updates["interval_s"] = int(env["SCALE_DOWN_INTERVAL_S"])
    if env.get("SUBNET_IDS"):
        updates["subnet_ids"] = [s.strip() for s in env["SUBNET_IDS"].split(",") if s.strip()]

    templates = dict(config.launch_templates)
    for os_name in ("linux", "windows"):
        name = env.get(f"LAUNCH_TEMPLATE_NAME_{os_name.upper()}")
        if name:
            version = env.get(f"LAUNCH_TEMPLATE_VERSION_{os_name.upper()}") or "$Latest"
            templates[os_name] = LaunchTemplate(name=name, version=version)
    if templates != config.launch_templates:
        updates["launch_templates"] = templates

    if not updates:
        return config
    # Round-trip through validation so env values get the same checks as YAML
    return ReclaimConfig.model_validate({**config.model_dump(), **updates})
