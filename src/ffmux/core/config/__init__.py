"""Configuration package.

Defaults live in `defaults`; `Settings` layers an optional YAML file on top.
"""

from __future__ import annotations

from .defaults import DEFAULT_CONFIG
from .settings import Settings, merge_config

__all__ = [
    "DEFAULT_CONFIG",
    "Settings",
    "merge_config",
]
