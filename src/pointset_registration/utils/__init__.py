"""
Utility Functions Module

This module provides common utilities used across the registration package.
- Logging setup
- Typed YAML configuration
"""

from .logging import setup_logger
from .config import (
    AppConfig,
    RegistrationConfig,
    OptimizerConfig,
    MetricConfig,
    TransformConfig,
    load_config,
)

__all__ = [
    "setup_logger",
    "AppConfig",
    "RegistrationConfig",
    "OptimizerConfig",
    "MetricConfig",
    "TransformConfig",
    "load_config",
]
