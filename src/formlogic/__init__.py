"""
formlogic
=========

Conditional-visibility and validation engine for form builders.

Given a form schema (ordered field definitions, optionally with conditional
rules) and a partially filled answer set, the engine decides which fields are
visible and whether the answers can be submitted.

This package provides:
    - Field definition model with per-type validation constraints
    - Rule evaluator (equals, not_equals, contains, greater_than, less_than, in)
    - Visibility resolver (legacy equals-only mode and generalized mode)
    - Per-field validator with an extensible per-type check registry
    - Whole-form validation with pluggable cross-field validators
    - Save-time schema checks (broken references, cycles, depth)

Basic usage:
    >>> from formlogic import FormValidator, FieldDefinition, FieldType
    >>>
    >>> fields = [
    ...     FieldDefinition(id="f1", type=FieldType.SELECT, label="Has car",
    ...                     required=True, options=["Sim", "Não"]),
    ...     FieldDefinition.from_dict({
    ...         "id": "f2", "type": "text", "label": "Plate", "required": True,
    ...         "dependency": {"dependsOnFieldId": "f1", "condition": "equals", "value": "Sim"},
    ...     }),
    ... ]
    >>> result = FormValidator(fields).validate({"f1": "Sim", "f2": "ABC-1234"})
    >>> result.is_valid
    True

Configuration:
    >>> import os
    >>> os.environ['FORMLOGIC_LOG_LEVEL'] = 'DEBUG'
    >>>
    >>> from formlogic import load_config, FormValidator
    >>> config = load_config()
    >>> validator = FormValidator.from_config(fields, config)

Version: 0.1.0
License: MIT
Python: 3.11+
"""

import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# =============================================================================
# VERSION METADATA
# =============================================================================

__version__ = "0.1.0"
__author__ = "formlogic developers"
__description__ = "Conditional-visibility and validation engine for form builders"
__license__ = "MIT"
__python_requires__ = ">=3.11"

VERSION_MAJOR = 0
VERSION_MINOR = 1
VERSION_PATCH = 0

_LOGGER_NAMESPACE = "formlogic"

if sys.version_info < (3, 11):
    raise RuntimeError(
        f"formlogic requires Python 3.11 or newer. "
        f"Running: {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    )

# =============================================================================
# LOGGING
# =============================================================================


_LOG_LEVELS: Dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# set on handlers installed by _setup_logging; handlers added by others are ignored
_HANDLER_MARK = "_formlogic_handler"


def _own_handlers(logger: logging.Logger) -> List[logging.Handler]:
    return [h for h in logger.handlers if getattr(h, _HANDLER_MARK, False)]


def _setup_logging() -> None:
    """
    Configure the package logger ('formlogic').

    - stderr handler for WARNING and above
    - rotating file handler for every level at the configured level, only when
      FORMLOGIC_LOG_DIR names a directory to write to
    - level from FORMLOGIC_LOG_LEVEL (DEBUG, INFO, WARNING, ERROR, CRITICAL),
      INFO by default

    Idempotent: a logger that already carries the package handlers is left alone.
    """
    log_level_str = os.environ.get("FORMLOGIC_LOG_LEVEL", "INFO").upper()
    log_level = _LOG_LEVELS.get(log_level_str, logging.INFO)

    root_logger = logging.getLogger(_LOGGER_NAMESPACE)
    if _own_handlers(root_logger):
        return

    root_logger.setLevel(log_level)

    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(formatter)
    setattr(console_handler, _HANDLER_MARK, True)
    root_logger.addHandler(console_handler)

    log_dir_env = os.environ.get("FORMLOGIC_LOG_DIR")
    if log_dir_env:
        try:
            log_dir = Path(log_dir_env)
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_dir / "formlogic.log",
                maxBytes=10 * 1024 * 1024,  # 10 MB
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            setattr(file_handler, _HANDLER_MARK, True)
            root_logger.addHandler(file_handler)
        except OSError as e:
            root_logger.warning(f"File logging disabled, cannot use {log_dir_env}: {e}")

    root_logger.propagate = False


def get_logger(module_name: str) -> logging.Logger:
    """
    Logger under the 'formlogic' namespace.

    Args:
        module_name: usually ``__name__``; names outside the namespace are
            prefixed, ``__main__`` becomes ``formlogic.main``.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Form %s published", form_id)
    """
    if module_name == _LOGGER_NAMESPACE or module_name.startswith(_LOGGER_NAMESPACE + "."):
        return logging.getLogger(module_name)
    if module_name == "__main__":
        return logging.getLogger(f"{_LOGGER_NAMESPACE}.main")
    clean_name = module_name.lstrip(".")
    if not clean_name:
        return logging.getLogger(_LOGGER_NAMESPACE)
    return logging.getLogger(f"{_LOGGER_NAMESPACE}.{clean_name}")


def _apply_log_level(level_name: Any) -> None:
    """Level from the config file; FORMLOGIC_LOG_LEVEL in the environment wins."""
    logger = logging.getLogger(_LOGGER_NAMESPACE)
    if os.environ.get("FORMLOGIC_LOG_LEVEL"):
        return
    level = _LOG_LEVELS.get(str(level_name).upper())
    if level is None:
        logger.warning(f"Unknown log_level {level_name!r} in config, keeping current level.")
        return
    logger.setLevel(level)
    for handler in _own_handlers(logger):
        if isinstance(handler, logging.handlers.RotatingFileHandler):
            handler.setLevel(level)


# =============================================================================
# CONFIGURATION
# =============================================================================

_DEFAULT_CONFIG: Dict[str, Any] = {
    "condition_mode": "legacy",
    "strict_conditions": False,
    "cascade_hidden": False,
    "locale": "en",
    "log_level": "INFO",
    "max_dependency_depth": 50,
}


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load engine configuration from a JSON file merged over the defaults.

    Keys:
        - condition_mode: str - "legacy" (only equals dependencies govern
          visibility) or "generalized"
        - strict_conditions: bool - unknown operators never match
        - cascade_hidden: bool - hide fields governed by hidden fields
          (generalized mode)
        - locale: str - error message catalog ("en", "pt")
        - log_level: str - package log level, unless FORMLOGIC_LOG_LEVEL is set
        - max_dependency_depth: int - save-time limit on dependency chains

    Args:
        config_path: JSON file; ``formlogic.json`` in the working directory
            when None.

    Returns:
        A new dict that always holds every default key. A missing file, invalid
        JSON, a non-object document or an unreadable file all yield the
        defaults (logged as a warning, except the missing file).
    """
    logger = get_logger(__name__)

    if config_path is None:
        config_path = Path("formlogic.json")

    config = _DEFAULT_CONFIG.copy()

    if not config_path.exists():
        logger.info(f"Config file {config_path} not found, using defaults.")
        return config

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            user_config = json.load(f)
        if not isinstance(user_config, dict):
            raise ValueError(
                f"config file must hold a JSON object, got {type(user_config).__name__}"
            )
        config.update(user_config)
        if "log_level" in user_config:
            _apply_log_level(user_config["log_level"])
        logger.info(f"Config loaded from {config_path}")
        logger.debug(f"Config: {config}")
    except json.JSONDecodeError as e:
        logger.warning(
            f"Cannot parse {config_path}: invalid JSON at line {e.lineno}, "
            f"column {e.colno}. Using defaults."
        )
    except OSError as e:
        logger.warning(f"Cannot read {config_path}: {e}. Using defaults.")
    except ValueError as e:
        logger.warning(f"Invalid config format: {e}. Using defaults.")

    return config


# =============================================================================
# PUBLIC API
# =============================================================================

# imported after the utilities so logging is configured first
from .model.enums import Condition, ConditionMode, FieldType, RuleAction, Visibility  # noqa: E402
from .form.form_elements import (  # noqa: E402
    ConditionalRule,
    DependencyRule,
    FieldDefinition,
    FieldValidations,
    SchemaError,
)
from .form.conditions import evaluate  # noqa: E402
from .form.visibility import (  # noqa: E402
    find_dependency_cycles,
    get_dependent_fields,
    get_field_dependencies,
    resolve_visibility,
)
from .form.validation import ValidationResult, register_field_check, validate_field  # noqa: E402
from .form.form_validator import FormValidator, get_validation_summary, validate_form  # noqa: E402
from .form.form_schema import FormSchema, load_fields  # noqa: E402

__all__ = [
    # Version metadata
    "__version__",
    "__author__",
    "__description__",
    "__license__",
    "__python_requires__",
    "VERSION_MAJOR",
    "VERSION_MINOR",
    "VERSION_PATCH",
    # Utilities
    "get_logger",
    "load_config",
    # Enums
    "Condition",
    "ConditionMode",
    "FieldType",
    "RuleAction",
    "Visibility",
    # Model
    "ConditionalRule",
    "DependencyRule",
    "FieldDefinition",
    "FieldValidations",
    "SchemaError",
    # Engine
    "evaluate",
    "resolve_visibility",
    "get_field_dependencies",
    "get_dependent_fields",
    "find_dependency_cycles",
    "validate_field",
    "register_field_check",
    "ValidationResult",
    "validate_form",
    "get_validation_summary",
    "FormValidator",
    "FormSchema",
    "load_fields",
]

# =============================================================================
# PACKAGE INITIALISATION
# =============================================================================

_setup_logging()

_logger = get_logger(__name__)
_logger.debug(f"formlogic v{__version__} initialised (Python {sys.version.split()[0]})")
