"""Config loading utilities for persistid."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from persistid.core.models import RegistryConfig

logger = logging.getLogger(__name__)

PROJECT_DIRNAME = ".persistid"


def project_root(project_dir: Path) -> Path:
    """Return the ``.persistid`` directory inside *project_dir*."""
    return project_dir / PROJECT_DIRNAME


def load_settings(persistid_dir: Path) -> dict[str, Any]:
    """Load .persistid/config/settings.yaml as a dict.

    Returns empty dict if the file doesn't exist.
    """
    path = persistid_dir / "config" / "settings.yaml"
    if not path.exists():
        logger.debug("No settings found at %s; using defaults", path)
        return {}

    logger.info("Loading settings from %s", path)
    with path.open() as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        logger.warning("settings.yaml did not contain a mapping; using empty dict")
        return {}

    return data


def make_registry_config(settings: dict[str, Any]) -> RegistryConfig:
    """Build a RegistryConfig from settings.yaml values.

    Only fields present under the ``registry`` key override the defaults
    defined in :class:`RegistryConfig`.
    """
    section = settings.get("registry", {})
    if not isinstance(section, dict):
        logger.warning("'registry' key is not a mapping; ignoring")
        section = {}

    # Unknown keys are dropped rather than failing validation.
    valid_fields = RegistryConfig.model_fields
    filtered = {k: v for k, v in section.items() if k in valid_fields}

    if dropped := set(section) - set(filtered):
        logger.warning("Ignoring unknown registry config keys: %s", sorted(dropped))

    if isinstance(filtered.get("log_level"), str):
        filtered["log_level"] = filtered["log_level"].upper()

    return RegistryConfig(**filtered)


def write_default_settings(persistid_dir: Path, config: RegistryConfig | None = None) -> Path:
    """Write settings.yaml with *config* (or defaults) unless one exists."""
    path = persistid_dir / "config" / "settings.yaml"
    if path.exists():
        return path
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {"registry": (config or RegistryConfig()).model_dump()}
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    logger.info("Wrote default settings to %s", path)
    return path
