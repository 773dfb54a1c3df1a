from pathlib import Path
from typing import Any

import yaml

from finwf.application.config_models import FinalizationConfig
from finwf.domain.constants import CONFIG_DIRNAME, CONFIG_FILENAME


class ConfigLoadError(Exception):
    def __init__(self, message: str, *, path: Path | None = None, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.cause = cause

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message}: {self.path}"


def _defaults() -> dict[str, Any]:
    return {
        "signature": {"service": "manual"},
        "rendering": {"service": "local"},
    }


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge mapping keys. For non-dict values, overlay wins.
    """
    merged: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            merged[k] = _deep_merge(merged[k], v)  # type: ignore[arg-type]
        else:
            merged[k] = v
    return merged


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    """
    Load YAML file and ensure root is a mapping. A missing file is an empty layer.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:  # pragma: no cover
        raise ConfigLoadError("Failed to read config file", path=path, cause=e) from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigLoadError("Malformed YAML", path=path, cause=e) from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigLoadError("YAML root must be a mapping", path=path)

    return data


def config_paths(*, project_root: Path | None = None, user_home: Path | None = None) -> list[Path]:
    """Config files in merge order (lowest precedence first)."""
    project_root = project_root or Path.cwd()
    user_home = user_home or Path.home()
    return [
        user_home / CONFIG_DIRNAME / CONFIG_FILENAME,
        project_root / CONFIG_DIRNAME / CONFIG_FILENAME,
    ]


def load_config(*, project_root: Path | None = None, user_home: Path | None = None) -> dict[str, Any]:
    """
    Load and merge config with precedence (highest wins):
    CLI args (handled in CLI) > project > user > defaults.

    Files:
      - user:    user_home/.finwf/config.yml
      - project: project_root/.finwf/config.yml
    """
    cfg: dict[str, Any] = _defaults()
    for path in config_paths(project_root=project_root, user_home=user_home):
        cfg = _deep_merge(cfg, _load_yaml_mapping(path))
    return cfg


def load_finalization_config(
    *,
    project_root: Path | None = None,
    user_home: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> FinalizationConfig:
    """
    Load the merged config, apply CLI overrides, and validate it.

    Raises:
        ConfigLoadError: If a config file cannot be parsed
        pydantic.ValidationError: If the merged values are invalid
    """
    cfg = load_config(project_root=project_root, user_home=user_home)
    if overrides:
        cfg = _deep_merge(cfg, overrides)
    return FinalizationConfig.model_validate(cfg)
