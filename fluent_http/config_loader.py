"""Config Loader - Loads transport configuration from YAML.

Values may reference variables as ${NAME} or ${NAME:-fallback}, so secrets
such as an API key header or a key password can stay out of the file. The
variables come from the `environ` mapping passed to load_transport_config(),
or from os.environ when none is given. Request and Response never read the
environment; this loader is the only place that does.

Only mapping values are expanded. Keys are taken literally, and `$$` writes
a literal `$`.

Example file:
    timeout: 10
    headers:
      User-Agent: my-service/1.0
      X-Api-Key: ${MY_SERVICE_API_KEY}
    ca_bundle: ${MY_SERVICE_CA_BUNDLE:-/etc/ssl/certs/ca-certificates.crt}
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import ValidationError

from fluent_http.models import TransportConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""


# $$ | ${NAME} | ${NAME:-fallback}
_REFERENCE = re.compile(r"\$(?:(\$)|\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\})")


def load_transport_config(
    config_path: str | Path,
    environ: Mapping[str, str] | None = None,
) -> TransportConfig:
    """Load a TransportConfig from a YAML file.

    Args:
        config_path: YAML file. An empty file gives the default config.
        environ: Variables for ${NAME} references. Defaults to os.environ.

    Raises:
        ConfigError: If the file is missing, is not a YAML mapping,
            references an unset variable with no fallback, or does not
            validate as a TransportConfig.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    expanded = _expand(raw_config, os.environ if environ is None else environ, key="")

    try:
        return TransportConfig.model_validate(expanded)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def _expand(value: Any, environ: Mapping[str, str], key: str) -> Any:
    if isinstance(value, str):
        return _expand_string(value, environ, key)
    if isinstance(value, dict):
        return {
            k: _expand(v, environ, f"{key}.{k}" if key else str(k))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_expand(item, environ, f"{key}[{i}]") for i, item in enumerate(value)]
    return value


def _expand_string(text: str, environ: Mapping[str, str], key: str) -> str:
    def replace(match: re.Match[str]) -> str:
        escaped, name, fallback = match.groups()
        if escaped:
            return "$"
        if name in environ:
            return environ[name]
        if fallback is not None:
            return fallback
        raise ConfigError(f"{key}: environment variable '{name}' is not set")

    return _REFERENCE.sub(replace, text)
