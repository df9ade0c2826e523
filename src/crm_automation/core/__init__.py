"""Configuration and error types shared by the engine."""

from .config import EngineConfig, EngineConfigManager
from .errors import (
    AutomationError,
    ConfigurationError,
    ResolutionError,
    UnknownTargetError,
    UnknownListError,
    EmptyTeamError,
    DispatchError,
)

__all__ = [
    "EngineConfig",
    "EngineConfigManager",
    "AutomationError",
    "ConfigurationError",
    "ResolutionError",
    "UnknownTargetError",
    "UnknownListError",
    "EmptyTeamError",
    "DispatchError",
]
