"""
Configuration management for FieldCrypt.

This module provides configuration utilities for controlling behavior
of the FieldCrypt layer, including development/production modes, key
material, field declarations and the storage backend.
"""

import os
from copy import deepcopy
from pathlib import Path

import yaml

from .errors import ConfigurationError


DEV_ENCRYPTION_KEY = "dev-only-encryption-key-do-not-use-in-production"
DEV_HASH_KEY = "dev-only-hash-key-do-not-use-in-production"


def _merge(target: dict, source: dict) -> None:
    """Recursively merge ``source`` into ``target`` in place."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = deepcopy(value)


class FieldCryptConfig:
    """
    Configuration for FieldCrypt.

    Values come from built-in defaults, then an optional YAML file, then
    environment variables (highest precedence).
    """

    # Default configuration values
    _default_config: dict[str, object] = {
        "mode": "DEV",  # DEV or PROD
        "encryption": {
            "key": None,
            "algorithm": "AES-GCM",
            "key_iterations": 100000,
            "deterministic": True,
        },
        "hashing": {
            "key": None,
            "normalize": ["trim", "diacritics", "lowercase"],
        },
        "database": {
            "backend": "memory",  # memory or arangodb
            "url": "http://localhost:8529",
            "database": "fieldcrypt",
            "username": "root",
            "password": "",
        },
        # model -> field -> {mode, strict, read_only, normalize}
        "fields": {},
        # model -> relation name -> target model
        "relations": {},
    }

    _config: dict[str, object] = {}

    _initialized: bool = False

    @classmethod
    def initialize(cls, config_path: str | None = None) -> None:
        """
        Initialize the configuration.

        Args:
            config_path: Optional path to a YAML configuration file

        Raises:
            ConfigurationError: If the file is missing or not valid YAML
        """
        cls._config = deepcopy(cls._default_config)

        if config_path:
            cls._load_from_file(config_path)

        cls._load_from_env()

        cls._initialized = True

    @classmethod
    def _load_from_file(cls, config_path: str) -> None:
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file
        """
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(path, "r") as f:
                file_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error loading configuration file: {e}") from e

        if file_config is None:
            return
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping: {config_path}")
        _merge(cls._config, file_config)

    @classmethod
    def _load_from_env(cls) -> None:
        """Load configuration from environment variables."""
        env_mode = os.environ.get("INDALEKO_MODE")
        if env_mode in ("DEV", "PROD"):
            cls._config["mode"] = env_mode

        env_key = os.environ.get("INDALEKO_ENCRYPTION_KEY")
        if env_key:
            cls._config["encryption"]["key"] = env_key

        env_algorithm = os.environ.get("INDALEKO_ENCRYPTION_ALGORITHM")
        if env_algorithm:
            cls._config["encryption"]["algorithm"] = env_algorithm

        env_hash_key = os.environ.get("INDALEKO_HASH_KEY")
        if env_hash_key:
            cls._config["hashing"]["key"] = env_hash_key

        env_backend = os.environ.get("INDALEKO_DB_BACKEND")
        if env_backend in ("memory", "arangodb"):
            cls._config["database"]["backend"] = env_backend

        env_db_url = os.environ.get("INDALEKO_DB_URL")
        if env_db_url:
            cls._config["database"]["url"] = env_db_url

        env_db_username = os.environ.get("INDALEKO_DB_USERNAME")
        if env_db_username:
            cls._config["database"]["username"] = env_db_username

        env_db_password = os.environ.get("INDALEKO_DB_PASSWORD")
        if env_db_password:
            cls._config["database"]["password"] = env_db_password

    @classmethod
    def _ensure_initialized(cls) -> None:
        """Ensure the configuration is initialized."""
        if not cls._initialized:
            cls.initialize()

    @classmethod
    def get(cls, key: str, default: object = None) -> object:
        """
        Get a configuration value.

        Args:
            key: The configuration key to retrieve, dots separate nested keys
            default: Default value to return if key is not found

        Returns:
            The configuration value, or default if not found
        """
        cls._ensure_initialized()

        if "." in key:
            value = cls._config
            for part in key.split("."):
                if isinstance(value, dict) and part in value:
                    value = value[part]
                else:
                    return default
            return default if value is None else value

        value = cls._config.get(key, default)
        return default if value is None else value

    @classmethod
    def is_dev_mode(cls) -> bool:
        """
        Check if the system is in development mode.

        Returns:
            True if in development mode, False otherwise
        """
        return cls.get("mode") == "DEV"

    @classmethod
    def get_encryption_key(cls) -> str:
        """
        Get the encryption secret.

        Development mode falls back to a fixed development-only secret.

        Raises:
            ConfigurationError: If no secret is configured outside DEV mode
        """
        key = cls.get("encryption.key")
        if key:
            return str(key)
        if cls.is_dev_mode():
            return DEV_ENCRYPTION_KEY
        raise ConfigurationError(
            "No encryption key configured (set INDALEKO_ENCRYPTION_KEY or encryption.key)"
        )

    @classmethod
    def get_hash_key(cls) -> str:
        """
        Get the hashing secret.

        Raises:
            ConfigurationError: If no secret is configured outside DEV mode
        """
        key = cls.get("hashing.key")
        if key:
            return str(key)
        if cls.is_dev_mode():
            return DEV_HASH_KEY
        raise ConfigurationError(
            "No hashing key configured (set INDALEKO_HASH_KEY or hashing.key)"
        )

    @classmethod
    def get_field_declarations(cls) -> dict:
        """Get the declared protected fields, keyed by model then field."""
        return deepcopy(cls.get("fields", {}))

    @classmethod
    def get_relations(cls) -> dict:
        """Get the declared relations, keyed by model then relation name."""
        return deepcopy(cls.get("relations", {}))

    @classmethod
    def get_database_url(cls) -> str:
        """
        Get the database URL.

        Returns:
            The URL of the database
        """
        return cls.get("database.url", "http://localhost:8529")

    @classmethod
    def get_database_credentials(cls) -> dict:
        """
        Get the database credentials.

        Returns:
            Dictionary containing database credentials
        """
        return {
            "username": cls.get("database.username", "root"),
            "password": cls.get("database.password", ""),
            "database": cls.get("database.database", "fieldcrypt"),
        }

    @classmethod
    def load_from_secrets_file(cls, file_path: str) -> None:
        """
        Merge configuration from a secrets file.

        A missing file is not an error; secrets files are optional.

        Args:
            file_path: Path to the secrets file
        """
        cls._ensure_initialized()

        path = Path(file_path)
        if not path.exists():
            return

        try:
            with open(path, "r") as f:
                secrets = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Error loading secrets file: {e}") from e

        if secrets:
            _merge(cls._config, secrets)
