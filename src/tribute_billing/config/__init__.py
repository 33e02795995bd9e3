"""Config – settings loading and configuration errors.

Settings live in :mod:`tribute_billing.config.settings`; import them from
there (this package only re-exports the error types so the kernel and
application layers can depend on them without pulling in the loaders).
"""

from tribute_billing.config.validation import (
    ConfigurationError,
    InvalidSettingValueError,
    MissingRequiredSettingError,
)

__all__ = [
    "ConfigurationError",
    "InvalidSettingValueError",
    "MissingRequiredSettingError",
]
