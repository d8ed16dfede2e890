"""Core module for compiler configuration, errors and shared types.

This module provides:
- Configuration model and cached access via get_config()
- Exception hierarchy with AwCompilerError as base
- Templatable scalar helpers shared by the compile passes
"""

from aw_compiler.core.config import (
    DEFAULT_CONFIG_PATH,
    CompilerConfig,
    get_config,
    is_debug_enabled,
    load_config,
    reset_config,
)
from aw_compiler.core.exceptions import (
    AwCompilerError,
    CheckoutError,
    CompilerIOError,
    ErrorKind,
    FrontmatterError,
    ImportResolutionError,
    SchemaError,
    ValidationError,
)

__all__ = [
    # Config
    "DEFAULT_CONFIG_PATH",
    "CompilerConfig",
    "get_config",
    "is_debug_enabled",
    "load_config",
    "reset_config",
    # Exceptions
    "AwCompilerError",
    "CheckoutError",
    "CompilerIOError",
    "ErrorKind",
    "FrontmatterError",
    "ImportResolutionError",
    "SchemaError",
    "ValidationError",
]
