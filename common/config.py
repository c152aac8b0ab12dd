import json
from pathlib import Path
from typing import Dict, Any

from common.errors import ConfigError
from common.logging.logger import get_logger

logger = get_logger("config")

# Centralized default values for all config keys used across the codebase.
# Each entry: (type, default_value)
# Types: str, int, float, bool, list, None (any)
CONFIG_SCHEMA: Dict[str, tuple] = {
    # Paths
    "paths.logs_dir":               (str,   "logs"),
    "paths.store_root":             (str,   "data/store"),
    "paths.output_dir":             (str,   "data/output"),

    # Byte-range fetcher
    "fetch.base_url":               (str,   "https://data.commoncrawl.org/"),
    "fetch.workers":                (int,   4),
    "fetch.queue_size":             (int,   1000),
    "fetch.connect_timeout":        (float, 10.0),
    "fetch.read_timeout":           (float, 120.0),
    "fetch.proxy_host":             (str,   None),
    "fetch.proxy_port":             (int,   None),
    "fetch.user_agent":             (str,   "cc-mirror/0.1"),
    "fetch.progress_interval":      (int,   30),

    # External-process refetcher
    "refetch.command":              (list,  ["wget", "--tries", "1", "-q", "-O", "{output}", "{url}"]),
    "refetch.timeout_seconds":      (float, 120.0),
    "refetch.max_file_length":      (int,   50_000_000),

    # Batch reader
    "batch.progress_every":         (int,   100_000),

    # Downsampling
    "downsample.mime_mode":         (str,   "header_or_detected"),

    # Index loader
    "index_db.sqlite_path":         (str,   "data/ccindex.db"),
    "index_db.batch_size":          (int,   100_000),
    "index_db.max_url_length":      (int,   10_000),
}


class Config:
    _instance = None
    _config: Dict[str, Any] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._load_config()
        return cls._instance

    def _load_config(self):
        config_path = Path("config.json")
        if not config_path.exists():
            self._config = {}
            return

        with open(config_path, "r") as f:
            self._config = json.load(f)

        self._ensure_dirs()

    def _ensure_dirs(self):
        paths = self._config.get("paths", {})
        for path in paths.values():
            if isinstance(path, str) and not path.endswith(('db', 'json', 'txt')):
                try:
                    Path(path).mkdir(parents=True, exist_ok=True)
                except OSError:
                    logger.warning(f"Could not create configured directory: {path}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Gets a config value by dot-separated key.

        Lookup order:
        1. Value from config.json (if present and not None)
        2. Caller-provided default (if not None)
        3. Schema default from CONFIG_SCHEMA
        4. None
        """
        value = self._get_raw(key)
        if value is not None:
            return value

        if default is not None:
            return default

        schema_entry = CONFIG_SCHEMA.get(key)
        if schema_entry is not None:
            return schema_entry[1]

        return None

    def validate(self) -> list:
        """
        Validates the loaded config against CONFIG_SCHEMA.

        Returns a list of warning strings for type mismatches.
        Does NOT raise -- config.json values always take precedence.
        """
        warnings = []
        for key, (expected_type, _default) in CONFIG_SCHEMA.items():
            if expected_type is None:
                continue
            value = self._get_raw(key)
            if value is None:
                continue
            # ints are accepted where floats are expected
            if expected_type is float and isinstance(value, int) and not isinstance(value, bool):
                continue
            if not isinstance(value, expected_type):
                warnings.append(
                    f"Config '{key}': expected {expected_type.__name__}, "
                    f"got {type(value).__name__} ({value!r})"
                )
        if warnings:
            for w in warnings:
                logger.warning(w)
        return warnings

    def _get_raw(self, key: str) -> Any:
        """Gets value from config.json without schema fallback."""
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return None
            if value is None:
                return None
        return value

    def require(self, key: str) -> Any:
        """
        Requires a config value to be explicitly set in config.json.

        Raises ConfigError if missing.
        """
        value = self._get_raw(key)
        if value is None:
            logger.error(f"Missing required config key: {key}")
            raise ConfigError(key)
        return value


# Global accessor
config = Config()
