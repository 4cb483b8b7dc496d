"""YAML task loading and validation."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import yaml

from tixsnatch.errors import ConfigError
from tixsnatch.models import PurchaseTask


def load_purchase_task(path: str | Path) -> PurchaseTask:
    """Load and validate a purchase task from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a YAML mapping, got {type(data).__name__}")

    if "sale_time" in data:
        data["sale_time"] = _sale_time_ms(data["sale_time"])

    try:
        return PurchaseTask.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid config: {e}") from e


def save_purchase_task(task: PurchaseTask, path: str | Path) -> Path:
    path = Path(path)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(task.model_dump(), f, allow_unicode=True, sort_keys=False)
    return path


def _sale_time_ms(value: object) -> int:
    """Accept epoch ms or an ISO-8601 datetime (naive = local time)."""
    if isinstance(value, datetime):
        return int(value.timestamp() * 1000)
    if isinstance(value, str):
        try:
            return int(datetime.fromisoformat(value).timestamp() * 1000)
        except ValueError as e:
            raise ConfigError(f"Invalid sale_time: {value!r}") from e
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise ConfigError(f"Invalid sale_time: {value!r}")
