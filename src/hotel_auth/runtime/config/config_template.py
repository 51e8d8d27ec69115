"""Loading of config.yaml with environment variable placeholders."""

import os
import re
from pathlib import Path

import yaml
from loguru import logger
from pydantic_core import ValidationError

from src.hotel_auth.runtime.config.config_data import ConfigData

# ${NAME}, ${NAME:-default} or ${NAME:?message}
_PLACEHOLDER = re.compile(r"\$\{(?P<name>[^}:]+)(?:(?P<op>:-|:\?)(?P<arg>[^}]*))?\}")


def substitute_env_vars(text: str) -> str:
    """Replace ``${VAR}`` placeholders with environment values.

    ``${VAR:-default}`` falls back to ``default``; ``${VAR}`` and
    ``${VAR:?message}`` raise ValueError when the variable is unset.
    """

    def resolve(match: re.Match[str]) -> str:
        name, op, arg = match.group("name", "op", "arg")
        value = os.getenv(name)
        if value is not None:
            return value
        if op == ":-":
            return arg
        if op == ":?":
            raise ValueError(f"Required environment variable {name}: {arg}")
        raise ValueError(f"Required environment variable {name} not set")

    return _PLACEHOLDER.sub(resolve, text)


def _check_provider_settings(config: ConfigData) -> None:
    if not config.features.external_identity_enabled:
        logger.info("External identity provider disabled; running local-only")
        return

    provider = config.identity_provider
    missing = [
        name
        for name in ("issuer", "audience", "jwks_uri")
        if not getattr(provider, name)
    ]
    if missing:
        raise ValueError(
            "External identity is enabled but identity_provider is missing: "
            + ", ".join(missing)
        )


def parse_templated_yaml(content: str) -> ConfigData:
    """Substitute environment variables into YAML text and validate it as ConfigData."""
    try:
        loaded = yaml.safe_load(substitute_env_vars(content))
    except yaml.YAMLError as e:
        raise ValueError(f"Error parsing YAML: {e}") from e
    if not loaded:
        raise ValueError("Failed to parse YAML")

    try:
        config = ConfigData(**(loaded.get("config") or {}))
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e

    _check_provider_settings(config)
    return config


def _promote_environment_overrides(env_mode: str) -> None:
    """Copy ``<ENV>_NAME`` variables to ``NAME`` for the active environment."""
    prefix = f"{env_mode.upper()}_"
    for var_name, var_value in list(os.environ.items()):
        if var_name.startswith(prefix):
            os.environ[var_name[len(prefix) :]] = var_value
            logger.debug(f"Set environment variable {var_name[len(prefix):]} from {var_name}")


def load_templated_yaml(file_path: Path) -> ConfigData:
    """
    Load a YAML file with environment variable substitution.

    Args:
        file_path: Path to the YAML file

    Returns:
        Validated configuration

    Raises:
        ValueError: If required environment variables are missing or a value is invalid
        FileNotFoundError: If the YAML file doesn't exist
    """
    content = Path(file_path).read_text()

    env_mode = os.getenv("APP_ENVIRONMENT", "development")
    logger.info(f"Loading configuration for environment: {env_mode}")
    _promote_environment_overrides(env_mode)

    return parse_templated_yaml(content)
