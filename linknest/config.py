"""
Configuration management for LinkNest.

Provides a hierarchical configuration system with sensible defaults.
Supports both global (~/.config/linknest/config.toml) and local
(linknest.toml) configurations.
"""
import os
import tomli
import tomli_w
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict


STORAGE_BACKENDS = ("database", "json", "memory")


@dataclass
class LinkNestConfig:
    """
    LinkNest configuration with sensible defaults.

    Configuration hierarchy (highest to lowest priority):
    1. Command-line arguments
    2. Environment variables (LINKNEST_*)
    3. Local config file (./linknest.toml or ./.linknestrc)
    4. User config file (~/.config/linknest/config.toml)
    5. System defaults
    """

    # Storage settings
    storage_backend: str = field(default="database")  # database, json, memory
    database: str = field(default="linknest.db")
    database_url: Optional[str] = field(default=None)  # Full connection string (overrides database)
    database_echo: bool = field(default=False)
    data_file: str = field(default="linknest.json")  # Used by the json backend
    storage_namespace: str = field(default="linknest-storage")

    # Export defaults
    export_pretty: bool = field(default=True)

    # Display settings
    output_format: str = field(default="table")  # table, json, plain, urls
    color_output: bool = field(default=True)
    page_size: int = field(default=20)

    # AI suggestions (OpenAI-compatible endpoint)
    llm_base_url: str = field(default="http://localhost:11434/v1")
    llm_api_key: Optional[str] = field(default=None)
    llm_model: Optional[str] = field(default=None)  # No default model - must be specified
    llm_temperature: float = field(default=0.2)
    llm_timeout: float = field(default=30.0)

    # Advanced
    log_level: str = field(default="WARNING")

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "LinkNestConfig":
        """
        Load configuration from files and environment.

        Args:
            config_file: Specific config file to load (overrides search)

        Returns:
            Merged configuration object
        """
        config = cls()

        user_config_path = Path.home() / ".config" / "linknest" / "config.toml"
        if user_config_path.exists():
            config._merge(cls._load_toml(user_config_path))

        local_paths = [
            Path.cwd() / "linknest.toml",
            Path.cwd() / ".linknestrc",
            Path.cwd() / ".linknest" / "config.toml"
        ]

        for path in local_paths:
            if path.exists():
                config._merge(cls._load_toml(path))
                break

        if config_file and config_file.exists():
            config._merge(cls._load_toml(config_file))

        config._apply_env_vars()
        config._expand_paths()

        return config

    @staticmethod
    def _load_toml(path: Path) -> Dict[str, Any]:
        """Load TOML configuration file."""
        with open(path, "rb") as f:
            return tomli.load(f)

    def _merge(self, data: Dict[str, Any]):
        """Merge configuration data into this instance."""
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)

    def _apply_env_vars(self):
        """Apply environment variables with LINKNEST_ prefix."""
        prefix = "LINKNEST_"
        for key, value in os.environ.items():
            if key.startswith(prefix):
                config_key = key[len(prefix):].lower()
                if hasattr(self, config_key):
                    self.set_value(config_key, value)

    def set_value(self, key: str, value: str):
        """
        Set a field from its string form, converting to the field's type.

        Raises:
            KeyError: If key is not a configuration field
            ValueError: If value cannot be converted
        """
        if not hasattr(self, key):
            raise KeyError(f"Unknown config key: {key}")

        current_value = getattr(self, key)
        if isinstance(current_value, bool):
            setattr(self, key, value.lower() in ("true", "1", "yes"))
        elif isinstance(current_value, int):
            setattr(self, key, int(value))
        elif isinstance(current_value, float):
            setattr(self, key, float(value))
        else:
            setattr(self, key, value)

    def _expand_paths(self):
        """Expand ~ and environment variables in paths."""
        path_fields = ["database", "data_file"]
        for field_name in path_fields:
            value = getattr(self, field_name)
            if isinstance(value, str):
                expanded = os.path.expanduser(os.path.expandvars(value))
                setattr(self, field_name, expanded)

    def save(self, path: Optional[Path] = None):
        """
        Save current configuration to TOML file.

        Args:
            path: Path to save to (defaults to user config)
        """
        if path is None:
            path = Path.home() / ".config" / "linknest" / "config.toml"

        path.parent.mkdir(parents=True, exist_ok=True)

        # TOML has no null, so unset optional values are left out
        data = {key: value for key, value in asdict(self).items() if value is not None}
        with open(path, "wb") as f:
            tomli_w.dump(data, f)

    def get_database_path(self) -> Path:
        """Get the resolved database path."""
        path = Path(self.database)
        if not path.is_absolute():
            path = Path.cwd() / path
        return path

    def get_data_file_path(self) -> Path:
        """Get the resolved path of the JSON storage file."""
        path = Path(self.data_file)
        if not path.is_absolute():
            path = Path.cwd() / path
        return path


# Global configuration instance
_config: Optional[LinkNestConfig] = None


def get_config(reload: bool = False, config_file: Optional[Path] = None) -> LinkNestConfig:
    """
    Get the global configuration instance.

    Args:
        reload: Force reload configuration from files
        config_file: Specific config file to load

    Returns:
        Global configuration instance
    """
    global _config
    if _config is None or reload or config_file:
        _config = LinkNestConfig.load(config_file)
    return _config


def init_config(database: Optional[str] = None, **kwargs) -> LinkNestConfig:
    """
    Initialize configuration with command-line overrides.

    Args:
        database: Database path override
        **kwargs: Other configuration overrides (config_file selects a file)

    Returns:
        Configured instance
    """
    config = get_config(config_file=kwargs.pop("config_file", None))

    if database:
        config.database = database

    for key, value in kwargs.items():
        if hasattr(config, key) and value is not None:
            setattr(config, key, value)

    return config
