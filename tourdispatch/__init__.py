"""tourdispatch Python package.

Public API:
  - import from `tourdispatch.api` (preferred) or `import tourdispatch` (re-export)
"""

from __future__ import annotations

from .api import *  # noqa: F401,F403
from . import api as _api

__all__ = list(_api.__all__)

__version__ = "0.1.0"
