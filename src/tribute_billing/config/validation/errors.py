"""Config validation errors."""
from tribute_billing.kernel.errors.application import ApplicationError


class ConfigurationError(ApplicationError):
    """Bad settings, a bad plan catalog, or bad arguments to a public call."""

    default_code = "configuration_error"


class MissingRequiredSettingError(ConfigurationError):
    default_code = "missing_required_setting"

    def __init__(self, setting_name: str) -> None:
        super().__init__(
            f"Required setting '{setting_name}' is missing",
            detail={"setting": setting_name},
        )
        self.setting_name = setting_name


class InvalidSettingValueError(ConfigurationError):
    """A setting is present but cannot be used, e.g. a negative intent TTL."""

    default_code = "invalid_setting_value"

    def __init__(self, setting_name: str, value: object, reason: str) -> None:
        super().__init__(
            f"Setting '{setting_name}' = {value!r}: {reason}",
            detail={"setting": setting_name, "reason": reason},
        )
        self.setting_name = setting_name
        self.value = value
        self.reason = reason


__all__ = ["ConfigurationError", "InvalidSettingValueError", "MissingRequiredSettingError"]
