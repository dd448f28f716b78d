#!/usr/bin/env python3
"""
Configuration loading for the Markov chat engine.

Settings come from YAML files in the project's ``configs`` directory. The
environment-specific file (``markov_<environment>.yaml``) is tried first, then
``markov.yaml``. Whatever is found is merged over the built-in defaults below,
and a handful of environment variables can override single keys so that
credentials never have to live in a checked-in file.
"""

import copy
import os

import yaml

from utils.errors import ConfigurationError

DEFAULT_CONFIG = {
    "database": {
        "backend": "sqlite",
        "sqlite": {
            "path": "markov_chain.db",
        },
        "postgresql": {
            "host": "localhost",
            "port": 5432,
            "dbname": "markov_chain",
            "user": "postgres",
            "password": "",
            "min_connections": 1,
            "max_connections": 10,
        },
    },
    "tokenizer": {
        "backend": "nltk",
        "language": "en",
        "background": True,
    },
    "generation": {
        "default_max_words": 50,
        "min_seeded_length": 10,
    },
    "ingestion": {
        "default_limit": 2000,
        "progress_interval": 1000,
        "preprocess": False,
    },
    "messages": {},
    "logging": {
        "console_json": True,
        "console_level": "INFO",
        "log_file": None,
    },
}

SUPPORTED_BACKENDS = ("sqlite", "postgresql")
SUPPORTED_TOKENIZERS = ("whitespace", "nltk", "spacy")

# env var -> (section path, cast)
ENV_OVERRIDES = {
    "MARKOV_DB_BACKEND": (("database", "backend"), str),
    "MARKOV_SQLITE_PATH": (("database", "sqlite", "path"), str),
    "MARKOV_PG_HOST": (("database", "postgresql", "host"), str),
    "MARKOV_PG_PORT": (("database", "postgresql", "port"), int),
    "MARKOV_PG_DBNAME": (("database", "postgresql", "dbname"), str),
    "MARKOV_PG_USER": (("database", "postgresql", "user"), str),
    "MARKOV_PG_PASSWORD": (("database", "postgresql", "password"), str),
    "MARKOV_TOKENIZER": (("tokenizer", "backend"), str),
}


def find_config_dir(start_dir=None):
    """
    Walk upwards from ``start_dir`` until a ``configs`` directory is found.

    Args:
        start_dir (str, optional): Directory to start from (defaults to this file's)

    Returns:
        str or None: Path of the configs directory, None if there is none
    """
    current = os.path.abspath(start_dir or os.path.dirname(__file__))

    while True:
        candidate = os.path.join(current, "configs")
        if os.path.isdir(candidate):
            return candidate
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


def _deep_merge(base, override):
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path, logger=None):
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Error loading config from {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    if logger:
        logger.info("Config loaded", extra={"metrics": {"config_path": path}})
    return data


def apply_env_overrides(config, environ=None):
    """
    Override single config keys from ``MARKOV_*`` environment variables.

    Args:
        config (dict): Configuration to update in place
        environ (dict, optional): Mapping to read instead of ``os.environ``

    Returns:
        dict: The same config object
    """
    environ = os.environ if environ is None else environ

    for var, (path, cast) in ENV_OVERRIDES.items():
        if var not in environ:
            continue
        try:
            value = cast(environ[var])
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {var}: {environ[var]!r}") from e

        section = config
        for key in path[:-1]:
            section = section.setdefault(key, {})
        section[path[-1]] = value

    return config


def validate_config(config):
    """Raise ConfigurationError for unsupported backend names."""
    backend = config["database"]["backend"]
    if backend not in SUPPORTED_BACKENDS:
        raise ConfigurationError(
            f"Unsupported database backend: {backend!r} "
            f"(expected one of {', '.join(SUPPORTED_BACKENDS)})")

    tokenizer = config["tokenizer"]["backend"]
    if tokenizer not in SUPPORTED_TOKENIZERS:
        raise ConfigurationError(
            f"Unsupported tokenizer backend: {tokenizer!r} "
            f"(expected one of {', '.join(SUPPORTED_TOKENIZERS)})")
    return config


def load_config(environment="development", config_path=None, config_dir=None,
                environ=None, logger=None):
    """
    Build the effective configuration.

    Args:
        environment (str): Environment name ('development', 'test', 'production')
        config_path (str, optional): Explicit YAML file; skips the configs lookup
        config_dir (str, optional): Directory holding the YAML files
        environ (dict, optional): Environment mapping used for overrides
        logger: Logger instance for reporting which file was used

    Returns:
        dict: The merged configuration
    """
    file_config = {}

    if config_path:
        if not os.path.exists(config_path):
            raise ConfigurationError(f"Config file not found: {config_path}")
        file_config = _read_yaml(config_path, logger)
    else:
        config_dir = config_dir or find_config_dir()
        if config_dir:
            env_config_path = os.path.join(config_dir, f"markov_{environment}.yaml")
            default_config_path = os.path.join(config_dir, "markov.yaml")

            if os.path.exists(env_config_path):
                file_config = _read_yaml(env_config_path, logger)
            elif os.path.exists(default_config_path):
                file_config = _read_yaml(default_config_path, logger)
            elif logger:
                logger.warning("No config file found, using defaults", extra={
                    "metrics": {"config_dir": config_dir, "environment": environment}
                })

    config = _deep_merge(DEFAULT_CONFIG, file_config)
    config["environment"] = environment
    apply_env_overrides(config, environ)
    return validate_config(config)
