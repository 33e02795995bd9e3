"""Kernel time – clock port and UTC helpers."""
from tribute_billing.kernel.time.clock import Clock, FrozenClock, SystemClock, ensure_utc

__all__ = ["Clock", "FrozenClock", "SystemClock", "ensure_utc"]
