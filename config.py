import os
import yaml

from settings_schema import ConfigSchema, validate_config

APP_VERSION = "1.0.0"
CONFIG_ENV = "ACCEL_CONFIG"


class YamlConfig:
    """Load and save application settings to a YAML file."""

    def __init__(self, path: str | None = None) -> None:
        self.path = path or os.environ.get(CONFIG_ENV, "accel.yaml")

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} must contain a mapping")
        return data

    def save(self, data: dict) -> None:
        validate_config(data)
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(dict(data), f)


def load_config(path: str | None = None) -> ConfigSchema:
    """Return the validated configuration, defaults filled in."""
    return validate_config(YamlConfig(path).load())
