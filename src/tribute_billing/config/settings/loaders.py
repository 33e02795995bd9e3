"""Config settings – loaders that assemble ``TRIBUTE_*`` variables into TributeSettings."""
from __future__ import annotations

import abc
import os
from pathlib import Path
from typing import Any, Mapping

from dotenv import dotenv_values

from tribute_billing.config.settings.tribute import TributeSettings


class SettingsLoader(abc.ABC):
    """Port: produce validated :class:`TributeSettings` from some source.

    *overrides* always win over whatever the source provides.
    """

    def load(self, overrides: Mapping[str, Any] | None = None) -> TributeSettings:
        return TributeSettings.from_sources(overrides, self.environ())

    @abc.abstractmethod
    def environ(self) -> Mapping[str, str]:
        """Variables to read ``TRIBUTE_*`` settings from."""


class EnvSettingsLoader(SettingsLoader):
    """Read the process environment, or an explicit mapping in tests."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = env

    def environ(self) -> Mapping[str, str]:
        return os.environ if self._env is None else self._env


class DotenvSettingsLoader(SettingsLoader):
    """Layer a ``.env`` file under the process environment.

    With ``override=True`` the file wins instead. ``os.environ`` itself is
    never modified.
    """

    def __init__(self, env_file: str | os.PathLike[str] = ".env", override: bool = False) -> None:
        self._env_file = Path(env_file)
        self._override = override

    def environ(self) -> Mapping[str, str]:
        from_file = {k: v for k, v in dotenv_values(self._env_file).items() if v is not None}
        if self._override:
            return {**os.environ, **from_file}
        return {**from_file, **os.environ}


__all__ = ["DotenvSettingsLoader", "EnvSettingsLoader", "SettingsLoader"]
