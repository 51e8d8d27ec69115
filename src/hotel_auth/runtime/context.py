"""Process-wide configuration held in a ContextVar, with scoped overrides."""

import os
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel

from src.hotel_auth.runtime.config.config_data import ConfigData
from src.hotel_auth.runtime.config.config_template import load_templated_yaml


@dataclass
class AppContext:
    """Application context containing configuration and other app-wide state."""

    config: ConfigData


def _load_default_config() -> ConfigData:
    config_path = Path(os.getenv("APP_CONFIG_FILE", "config.yaml"))
    if not config_path.exists():
        logger.warning(f"{config_path} not found; using built-in configuration defaults")
        return ConfigData()
    return load_templated_yaml(config_path)


_app_context: ContextVar[AppContext] = ContextVar(
    "app_context", default=AppContext(config=_load_default_config())
)


def get_context() -> AppContext:
    return _app_context.get()


def set_context(context: AppContext) -> Token[AppContext]:
    """Set the current application context.

    Args:
        context: AppContext instance to set as current.
    """
    return _app_context.set(context)


def _explicit_fields(model: BaseModel) -> dict[str, Any]:
    """Values the caller actually set on ``model``, nested models included."""
    explicit: dict[str, Any] = {}
    for name in type(model).model_fields:
        value = getattr(model, name)
        if isinstance(value, BaseModel):
            nested = _explicit_fields(value)
            if nested:
                explicit[name] = nested
            elif name in model.model_fields_set:
                explicit[name] = value.model_dump()
        elif name in model.model_fields_set:
            explicit[name] = value
    return explicit


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@contextmanager
def with_context(config_override: ConfigData | None = None):
    """Temporarily override parts of the current configuration.

    Only fields explicitly set on ``config_override`` change; everything else
    is inherited from the enclosing context.

    Example:
        override = ConfigData(features=FeaturesConfig(external_identity_enabled=True))
        with with_context(override):
            assert get_config().features.external_identity_enabled
    """
    if config_override is None:
        yield
        return

    if not isinstance(config_override, ConfigData):
        raise ValueError(
            f"config_override must be ConfigData, or None, got {type(config_override)}"
        )

    current = get_context()
    merged = ConfigData.model_validate(
        _deep_merge(current.config.model_dump(), _explicit_fields(config_override))
    )
    token = set_context(replace(current, config=merged))
    try:
        yield
    finally:
        _app_context.reset(token)


def set_config(config: ConfigData) -> None:
    """Replace the entire current configuration."""
    set_context(replace(get_context(), config=config))


def get_config() -> ConfigData:
    """Convenience function to get the current configuration."""
    return get_context().config
