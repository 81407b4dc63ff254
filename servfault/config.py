import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypedDict

import yaml

from servfault.classification import ErrorCategory, ErrorPolicy
from servfault.exceptions import ServFaultConfigError
from servfault.identifier import CorrelationMode
from servfault.rendering import DEFAULT_LOGIN, DEFAULT_LOGIN_LOCATIONS
from servfault.reporting import DEFAULT_REPORT_LOGGER

logger = logging.getLogger(__name__)

# Default config file name
DEFAULT_CONFIG_FILE = "servfault.config.yaml"

DEBUG_ENV_VAR = "SERVFAULT_DEBUG"
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}
_ENV_REFERENCE = re.compile(r"\$\{(?P<name>[^}:]+)(?::-(?P<fallback>[^}]*))?\}")


class PolicyConfig(TypedDict, total=False):
    kind: str
    status_code: int | None
    reportable: bool
    category: str


class ErrorsConfig(TypedDict, total=False):
    debug: bool
    not_found_redirect: str | None
    correlation: str
    login_locations: dict[str, str]
    default_login: str
    template_dirs: list[str]
    translations: str
    policies: list[PolicyConfig]
    logger: str


@dataclass
class ErrorHandlingConfig:
    """Settings for the exception handler."""

    debug: bool = False
    not_found_redirect: str | None = None
    correlation: CorrelationMode = CorrelationMode.UNIQUE
    login_locations: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_LOGIN_LOCATIONS)
    )
    default_login: str = DEFAULT_LOGIN
    template_dirs: list[Path] = field(default_factory=list)
    translations: Path | None = None
    policies: dict[str, ErrorPolicy] = field(default_factory=dict)
    logger: str = DEFAULT_REPORT_LOGGER

    @classmethod
    def from_dict(
        cls, raw: dict[str, Any], base_directory: str | Path = "."
    ) -> "ErrorHandlingConfig":
        """Build the settings from the ``errors`` section of a config file.

        Relative template and translation paths are resolved against
        ``base_directory``, normally the directory of the config file.

        Raises:
            ServFaultConfigError: If a value has the wrong type or is unknown.
        """
        base = Path(base_directory)
        settings: ErrorsConfig = raw.get("errors") or {}
        if not isinstance(settings, dict):
            raise ServFaultConfigError("The 'errors' section must be a dictionary")

        config = cls()
        if "debug" in settings:
            config.debug = _parse_bool(settings["debug"], "debug")

        redirect_to = settings.get("not_found_redirect")
        if redirect_to is not None and not isinstance(redirect_to, str):
            raise ServFaultConfigError("'not_found_redirect' must be a string")
        config.not_found_redirect = redirect_to or None

        if "correlation" in settings:
            try:
                config.correlation = CorrelationMode(settings["correlation"])
            except ValueError as e:
                raise ServFaultConfigError(
                    f"Invalid correlation mode '{settings['correlation']}', expected "
                    f"one of: {', '.join(mode.value for mode in CorrelationMode)}"
                ) from e

        login_locations = settings.get("login_locations")
        if login_locations is not None:
            if not isinstance(login_locations, dict):
                raise ServFaultConfigError("'login_locations' must be a dictionary")
            config.login_locations = {
                str(segment): str(location)
                for segment, location in login_locations.items()
            }

        if "default_login" in settings:
            config.default_login = str(settings["default_login"])

        template_dirs = settings.get("template_dirs", [])
        if not isinstance(template_dirs, list):
            raise ServFaultConfigError("'template_dirs' must be a list of directories")
        config.template_dirs = [base / directory for directory in template_dirs]

        if settings.get("translations"):
            config.translations = base / settings["translations"]

        for i, policy in enumerate(settings.get("policies") or []):
            kind, error_policy = _parse_policy(i, policy)
            config.policies[kind] = error_policy

        if "logger" in settings:
            config.logger = str(settings["logger"])

        return config

    @classmethod
    def load(cls, config_path: str | Path = DEFAULT_CONFIG_FILE) -> "ErrorHandlingConfig":
        """Load settings from a YAML file and the environment.

        A missing file gives the defaults. ``SERVFAULT_DEBUG`` overrides the
        ``debug`` setting from the file.
        """
        config_path = Path(config_path)
        config = cls.from_dict(load_config(config_path), config_path.parent)
        debug = debug_from_environment()
        if debug is not None:
            config.debug = debug

        return config


def debug_from_environment() -> bool | None:
    """Read the debug flag from ``SERVFAULT_DEBUG``, ``None`` when unset."""
    value = os.environ.get(DEBUG_ENV_VAR)
    if value is None:
        return None

    return _parse_bool(value, DEBUG_ENV_VAR)


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value

    normalized = str(value).strip().lower()
    if normalized in _TRUTHY:
        return True
    if normalized in _FALSY:
        return False

    raise ServFaultConfigError(f"Invalid boolean for '{name}': {value!r}")


def _parse_policy(index: int, policy: Any) -> tuple[str, ErrorPolicy]:
    if not isinstance(policy, dict):
        raise ServFaultConfigError(f"Error policy {index} must be a dictionary")

    if "kind" not in policy:
        raise ServFaultConfigError(f"Error policy {index} missing required 'kind' field")

    try:
        category = ErrorCategory(policy.get("category", ErrorCategory.HTTP_GENERIC))
    except ValueError as e:
        raise ServFaultConfigError(
            f"Error policy {index} has unknown category '{policy['category']}'"
        ) from e

    status_code = policy.get("status_code")
    if status_code is not None and not isinstance(status_code, int):
        raise ServFaultConfigError(f"Error policy {index} status_code must be an integer")

    return str(policy["kind"]), ErrorPolicy(
        category,
        reportable=_parse_bool(policy.get("reportable", False), "reportable"),
        status_code=status_code,
    )


def load_config(config_path: str | Path) -> dict[str, Any]:
    """Read a YAML configuration file with ``${VAR}`` references expanded.

    ``${VAR:-fallback}`` expands to ``fallback`` when ``VAR`` is unset. A
    missing file is an empty configuration.

    Raises:
        ServFaultConfigError: If the file can't be read or parsed, doesn't
            hold a mapping or references an unset variable with no fallback.
    """
    path = Path(config_path)
    if not path.exists():
        logger.debug("No configuration at %s, using defaults", path)
        return {}

    try:
        raw = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ServFaultConfigError(f"Error loading configuration from {path}: {e}") from e

    match raw:
        case None:
            return {}
        case dict():
            return expand_env_references(raw)
        case _:
            raise ServFaultConfigError(
                f"Invalid configuration format in {path}. Expected a dictionary."
            )


def expand_env_references(value: Any) -> Any:
    """Replace ``${VAR}`` references in every string nested in ``value``."""
    match value:
        case str():
            return _ENV_REFERENCE.sub(_env_value, value)
        case dict():
            return {key: expand_env_references(item) for key, item in value.items()}
        case list():
            return [expand_env_references(item) for item in value]
        case _:
            return value


def _env_value(reference: re.Match[str]) -> str:
    name, fallback = reference.group("name", "fallback")
    value = os.environ.get(name, fallback)
    if value is None:
        raise ServFaultConfigError(f"Required environment variable '{name}' is not set")

    return value
