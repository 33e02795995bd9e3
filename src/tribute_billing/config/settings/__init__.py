"""Config settings – 12-factor env-based configuration."""
from tribute_billing.config.settings.loaders import DotenvSettingsLoader, EnvSettingsLoader, SettingsLoader
from tribute_billing.config.settings.tribute import (
    DEFAULT_INTENT_TTL_MINUTES,
    TributeSettings,
    load_plans_from_file,
    load_plans_from_json,
    load_tribute_settings,
    parse_boolean,
)

__all__ = [
    "DEFAULT_INTENT_TTL_MINUTES",
    "DotenvSettingsLoader",
    "EnvSettingsLoader",
    "SettingsLoader",
    "TributeSettings",
    "load_plans_from_file",
    "load_plans_from_json",
    "load_tribute_settings",
    "parse_boolean",
]
