import copy
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

CONFIG_DIR = Path.home() / ".prayerbell"
CONFIG_FILE = CONFIG_DIR / "config.yaml"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'

DEFAULT_CONFIG: Dict[str, Any] = {
    "database": {
        "url": "${PRAYERBELL_DATABASE_URL}",
    },
    "location": {
        "lat": "${DEFAULT_LAT}",
        "lng": "${DEFAULT_LNG}",
        "timezone": "${DEFAULT_TIMEZONE}",
    },
    "timings": {
        "method": 2,
        "base_url": "https://api.aladhan.com/v1",
        "timeout": 10,
    },
    "reminders": {
        "interval_seconds": 300,
        "tolerance_minutes": 2,
        "prayer_day_policy": "calendar",
        "events": {"enable": True, "send_hour": 8, "interval_seconds": 300},
        "tasks": {"enable": True, "interval_seconds": 60},
    },
    "notify": {
        "channels": ["mail"],
        "mail": {
            "host": "${EMAIL_HOST}",
            "port": "${EMAIL_PORT}",
            "use_tls": "${EMAIL_USE_TLS}",
            "username": "${EMAIL_HOST_USER}",
            "password": "${EMAIL_HOST_PASSWORD}",
            "recipient": "${NOTIFY_EMAIL}",
        },
        "desktop": {"timeout": 15},
    },
    "logging": {
        "level": "INFO",
        "file": None,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = value
    return result


def substitute_env_vars(data: Any) -> Any:
    """
    Recursively replace "${VAR}" / "$VAR" strings with the environment value.
    A reference to an unset variable becomes None.
    """
    if isinstance(data, dict):
        return {key: substitute_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [substitute_env_vars(item) for item in data]
    if isinstance(data, str):
        if data.startswith('${') and data.endswith('}'):
            return os.environ.get(data[2:-1]) or None
        if data.startswith('$') and len(data) > 1:
            return os.environ.get(data[1:]) or None
    return data


class Config:
    def __init__(self, config_path: Optional[str] = None):
        if config_path:
            self.config_file = Path(config_path).expanduser().resolve()
            self.config_dir = self.config_file.parent
        else:
            self.config_dir = CONFIG_DIR
            self.config_file = CONFIG_FILE
        logging.debug(f"Using config file: {self.config_file}")

        self._load_env_files()
        self._ensure_config_exists()
        self.data = self._load_config()

    def _load_env_files(self) -> None:
        """Load .env from the config dir, its parent, or cwd; real environment wins."""
        for path in (self.config_dir / ".env", self.config_dir.parent / ".env", Path.cwd() / ".env"):
            if path.exists():
                logging.info(f"Loading environment variables from: {path}")
                load_dotenv(path, override=False)
                return
        logging.debug("No .env file found, skipping environment variable loading")

    def _ensure_config_exists(self) -> None:
        """Create default config if it doesn't exist"""
        if self.config_file.exists():
            return
        logging.info(f"Creating default config file: {self.config_file}")
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(yaml.safe_dump(DEFAULT_CONFIG, sort_keys=False))

    def _load_config(self) -> Dict[str, Any]:
        with open(self.config_file) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Invalid config format in {self.config_file}: root must be a mapping")
        data = substitute_env_vars(_merge(DEFAULT_CONFIG, raw))
        log_file = (data.get("logging") or {}).get("file")
        if log_file:
            data["logging"]["file"] = os.path.expanduser(log_file)
        return data

    def section(self, name: str) -> Dict[str, Any]:
        return self.data.get(name) or {}


def setup_basic_logging() -> None:
    """Setup basic stdout logging before config is loaded"""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.INFO)


def setup_logging(config: Config) -> None:
    """Apply logging.level and add logging.file if configured."""
    log_config = config.section("logging")
    level = getattr(logging, str(log_config.get("level") or "INFO").upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    log_file = log_config.get("file")
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(handler)
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
