"""Runtime configuration: YAML file, environment and CLI overrides.

Precedence, highest first: CLI arguments, environment variables
(DEPLOAD_CACHE, DEPLOAD_REGISTRY), the YAML file, built-in defaults.
The YAML file is found via ``--config``, DEPLOAD_CONFIG, ``./depload.yml``
or ``~/.config/depload/depload.yml``.

Example::

    cache: ~/.cache/depload
    registry: https://registry.npmjs.org/
    http:
      timeout: 30
      max_redirects: 10
    extensions: [".js", ".node"]
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from common.errors import ParseError
from constants import Constants

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Settings shared by the cache, fetchers and npm client."""

    cache_root: Optional[str] = None
    registry_url: str = Constants.REGISTRY_URL_NPM
    request_timeout: int = Constants.REQUEST_TIMEOUT
    max_redirects: int = Constants.MAX_REDIRECTS
    extensions: Tuple[str, ...] = field(default_factory=lambda: tuple(Constants.DEFAULT_EXTENSIONS))
    source: Optional[str] = None


def candidate_paths(explicit: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
    """Config file locations to try, in order."""
    env = os.environ if environ is None else environ
    if explicit:
        return [explicit]
    paths = []
    if env.get(Constants.ENV_CONFIG):
        paths.append(env[Constants.ENV_CONFIG])
    paths.append(os.path.join(os.getcwd(), Constants.CONFIG_FILE))
    paths.append(os.path.join(os.path.expanduser("~"), ".config", "depload", Constants.CONFIG_FILE))
    return paths


def load_yaml_config(path: str) -> Dict[str, Any]:
    """Read a YAML config file into a dict.

    Raises:
        ParseError: if the file is not valid YAML or not a mapping.
    """
    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle)
        except yaml.YAMLError as exc:
            raise ParseError(f"Invalid config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ParseError(f"Config file {path} must contain a mapping.")
    return data


def find_config(explicit: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
    """Return (path, data) for the first existing config file, or (None, {})."""
    for path in candidate_paths(explicit, environ):
        if os.path.isfile(path):
            return path, load_yaml_config(path)
        if explicit:
            logger.warning("Config file not found: %s", path)
    return None, {}


def _apply_yaml(config: EngineConfig, data: Dict[str, Any]) -> None:
    if data.get("cache"):
        config.cache_root = os.path.expanduser(str(data["cache"]))
    if data.get("registry"):
        config.registry_url = str(data["registry"])
    http = data.get("http") or {}
    if not isinstance(http, dict):
        raise ParseError('Config key "http" must be a mapping.')
    try:
        if http.get("timeout") is not None:
            config.request_timeout = int(http["timeout"])
        if http.get("max_redirects") is not None:
            config.max_redirects = int(http["max_redirects"])
    except (TypeError, ValueError) as exc:
        raise ParseError(f"Invalid http settings in config: {exc}") from exc
    extensions = data.get("extensions")
    if extensions:
        if isinstance(extensions, str):
            extensions = [extensions]
        config.extensions = tuple(str(ext) for ext in extensions)


def load_config(args: Any = None, environ: Optional[Mapping[str, str]] = None) -> EngineConfig:
    """Build the effective EngineConfig.

    Args:
        args: Parsed CLI namespace (CONFIG, CACHE, REGISTRY attributes), or None.
        environ: Environment mapping; defaults to ``os.environ``.
    """
    env = os.environ if environ is None else environ
    config = EngineConfig()

    path, data = find_config(getattr(args, "CONFIG", None), env)
    if path:
        _apply_yaml(config, data)
        config.source = path
        logger.debug("Loaded config from %s", path)

    if env.get(Constants.ENV_CACHE):
        config.cache_root = env[Constants.ENV_CACHE]
    if env.get(Constants.ENV_REGISTRY):
        config.registry_url = env[Constants.ENV_REGISTRY]

    if getattr(args, "CACHE", None):
        config.cache_root = args.CACHE
    if getattr(args, "REGISTRY", None):
        config.registry_url = args.REGISTRY
    return config
