import copy
import json
import os
import logging

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "VISITBOARD_CONFIG"


class ConfigManager:
    _instance = None
    _config = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(ConfigManager, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if self._config is None:
            self.load_config()

    def load_config(self, config_path=None):
        """Load settings from JSON, falling back to defaults section by section"""
        self._config_path = config_path or self._default_config_path()
        config = self._get_default_config()
        try:
            with open(self._config_path, 'r') as f:
                loaded = json.load(f)
        except FileNotFoundError:
            logger.info(f"Config file {self._config_path} not found. Using default values.")
            loaded = {}
        except json.JSONDecodeError:
            logger.error(f"Invalid config file format in {self._config_path}. Using default values.")
            loaded = {}

        if not isinstance(loaded, dict):
            logger.error(f"Config file {self._config_path} must hold a JSON object. Using default values.")
            loaded = {}

        for section, values in loaded.items():
            if section in config and isinstance(values, dict):
                config[section].update(values)
            else:
                logger.warning(f"Ignoring unknown config section: {section}")
        self._config = config
        return self._config

    def _default_config_path(self):
        return os.environ.get(CONFIG_ENV_VAR) or os.path.join(os.path.dirname(__file__), 'config.json')

    def _get_default_config(self):
        return copy.deepcopy({
            "server": {
                "host": "127.0.0.1",
                "port": 9000,
                "cors_origins": ["http://localhost:3000", "http://localhost:5173"]
            },
            "database": {
                "path": "users.db",
                "timeout": 5.0
            },
            "security": {
                "schemes": ["bcrypt_sha256"],
                "bcrypt_rounds": 12
            },
            "seed": {
                "enabled": True,
                "username": "testuser",
                "password": "password123"
            },
            "logging": {
                "level": "INFO",
                "file": None
            }
        })

    def get_server_config(self):
        return self._config.get("server", {})

    def get_database_config(self):
        return self._config.get("database", {})

    def get_security_config(self):
        return self._config.get("security", {})

    def get_seed_config(self):
        return self._config.get("seed", {})

    def get_logging_config(self):
        return self._config.get("logging", {})

    def update_config(self, section, key, value):
        if section in self._config and key in self._config[section]:
            self._config[section][key] = value
            return True
        return False

    def save_config(self, config_path=None):
        path = config_path or self._config_path
        try:
            with open(path, 'w') as f:
                json.dump(self._config, f, indent=4)
            return True
        except OSError as e:
            logger.error(f"Error saving config: {e}")
            return False


# Global instance
config = ConfigManager()
