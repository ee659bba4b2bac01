"""
Identity Service Configuration Loader

Reads identity.yaml, substitutes environment variables and builds a
ServiceConfig.

Substitution syntax inside any string value:
- ${NAME}            value of NAME, KeyError when unset
- ${NAME:-fallback}  value of NAME, or "fallback" when unset

Example:
```yaml
permission:
  role_base_url: "${ROLE_BASE_URL:-https://example.com/roles}"
identity:
  identities:
    - id: "${ADMIN_IDENTITY_ID}"
```
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .schema import ServiceConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "identity.yaml"

ENV_VAR_PATTERN = re.compile(r'\$\{([^}:]+)(?::-([^}]*))?\}')


def _substitute(match: "re.Match") -> str:
    name, fallback = match.group(1), match.group(2)
    value = os.environ.get(name, fallback)
    if value is None:
        raise KeyError(
            f"Environment variable '{name}' is not set and has no fallback "
            f"(use ${{{name}:-value}} to provide one)"
        )
    return value


def interpolate_env_vars(value: Any) -> Any:
    """
    Substitute environment variables in every string of a parsed YAML tree.

    Raises:
        KeyError: a referenced variable is unset and has no fallback
    """
    if isinstance(value, str):
        return ENV_VAR_PATTERN.sub(_substitute, value)
    if isinstance(value, dict):
        return {key: interpolate_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [interpolate_env_vars(item) for item in value]
    return value


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    return data or {}


def load_config_from_file(
    config_path: Union[str, Path],
    interpolate: bool = True
) -> ServiceConfig:
    """
    Build a ServiceConfig from one YAML file.

    ``working_dir`` defaults to the directory holding the file.

    Raises:
        FileNotFoundError: no file at config_path
        KeyError: a referenced environment variable is unset
        yaml.YAMLError: the file is not valid YAML
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from {config_path}")
    raw = _read_yaml(config_path)

    if interpolate:
        try:
            raw = interpolate_env_vars(raw)
        except KeyError as e:
            logger.error(f"Configuration error in {config_path}: {e}")
            raise

    raw.setdefault("working_dir", str(config_path.parent.absolute()))
    return ServiceConfig.from_dict(raw)


def config_search_paths(working_dir: Optional[Union[str, Path]] = None) -> List[Path]:
    """Candidate identity.yaml locations, most specific first"""
    roots = [Path(working_dir)] if working_dir else []
    roots.append(Path.cwd())
    return [path for root in roots for path in (root / CONFIG_FILENAME, root / "config" / CONFIG_FILENAME)]


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    working_dir: Optional[Union[str, Path]] = None,
) -> ServiceConfig:
    """
    Load the service configuration.

    Uses config_path when given, otherwise the first identity.yaml found in
    working_dir, working_dir/config, the current directory or ./config.
    Falls back to built-in defaults when none exists.
    """
    if config_path:
        return load_config_from_file(config_path)

    for path in config_search_paths(working_dir):
        if path.exists():
            return load_config_from_file(path)

    logger.info(f"No {CONFIG_FILENAME} found, using default configuration")
    return ServiceConfig(working_dir=Path(working_dir) if working_dir else Path.cwd())
