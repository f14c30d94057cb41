"""Built-in adapters."""
from __future__ import annotations

from switchyard_runtime.adapters.static import StaticAdapter

__all__ = ["StaticAdapter"]
