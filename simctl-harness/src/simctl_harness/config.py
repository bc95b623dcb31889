"""Runtime configuration for simctl invocations and TCC database access.

Values come from (lowest to highest precedence):
  * dataclass defaults
  * an optional YAML/JSON file (validated against `CONFIG_SCHEMA`)
  * `SIMCTL_*` environment variables
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from jsonschema import Draft202012Validator

DEVICE_SET_DEFAULT = "default"
DEVICE_SET_TESTING = "testing"

DEFAULT_DEVICES_ROOT = "~/Library/Developer/CoreSimulator/Devices"
TESTING_DEVICES_ROOT = "~/Library/Developer/XCTestDevices"

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "xcrun_path": {"type": "string", "minLength": 1},
        "device_set": {"enum": [DEVICE_SET_DEFAULT, DEVICE_SET_TESTING]},
        "devices_root": {"type": ["string", "null"]},
        "timeout_s": {"type": "number", "exclusiveMinimum": 0},
        "busy_timeout_s": {"type": "number", "minimum": 0},
    },
}

_ENV_KEYS = {
    "SIMCTL_XCRUN": "xcrun_path",
    "SIMCTL_DEVICE_SET": "device_set",
    "SIMCTL_DEVICES_ROOT": "devices_root",
    "SIMCTL_TIMEOUT_S": "timeout_s",
    "SIMCTL_BUSY_TIMEOUT_S": "busy_timeout_s",
}

_FLOAT_KEYS = {"timeout_s", "busy_timeout_s"}


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class SimctlConfig:
    xcrun_path: str = "xcrun"
    device_set: str = DEVICE_SET_DEFAULT
    devices_root: Optional[str] = None
    timeout_s: float = 60.0
    busy_timeout_s: float = 5.0

    @property
    def testing(self) -> bool:
        return self.device_set == DEVICE_SET_TESTING

    def resolved_devices_root(self) -> Path:
        """Absolute directory holding one sub-directory per simulator UDID."""

        if self.devices_root:
            raw = self.devices_root
        elif self.testing:
            raw = TESTING_DEVICES_ROOT
        else:
            raw = DEFAULT_DEVICES_ROOT
        return Path(raw).expanduser().resolve()

    def with_overrides(self, **overrides: Any) -> "SimctlConfig":
        values = {k: v for k, v in overrides.items() if v is not None}
        if not values:
            return self
        cfg = replace(self, **values)
        validate_config(cfg.to_dict(), where="overrides")
        return cfg

    def to_dict(self) -> Dict[str, Any]:
        return {
            "xcrun_path": self.xcrun_path,
            "device_set": self.device_set,
            "devices_root": self.devices_root,
            "timeout_s": self.timeout_s,
            "busy_timeout_s": self.busy_timeout_s,
        }


def validate_config(data: Mapping[str, Any], *, where: str) -> None:
    validator = Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(dict(data)), key=lambda e: list(e.path))
    if errors:
        msgs = []
        for e in errors:
            loc = "/".join([str(p) for p in e.path])
            msgs.append(f"- {where}:{loc}: {e.message}")
        raise ConfigError("\n".join(msgs))


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")

    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        elif path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            raise ConfigError(f"unsupported config file extension: {path}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"failed to parse config {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"top-level config must be an object: {path}")
    return data


def _env_values(env: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for env_key, field_name in _ENV_KEYS.items():
        raw = env.get(env_key)
        if raw is None or not raw.strip():
            continue
        raw = raw.strip()
        if field_name in _FLOAT_KEYS:
            try:
                values[field_name] = float(raw)
            except ValueError as e:
                raise ConfigError(f"{env_key} must be a number, got {raw!r}") from e
        else:
            values[field_name] = raw
    return values


def load_config(
    path: Optional[Path] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
) -> SimctlConfig:
    data: Dict[str, Any] = {}
    if path is not None:
        data.update(_load_file(Path(path)))
        validate_config(data, where=str(path))

    env_data = _env_values(os.environ if env is None else env)
    if env_data:
        validate_config(env_data, where="environment")
        data.update(env_data)

    return SimctlConfig(**data)
