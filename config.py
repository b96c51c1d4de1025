"""
Configuration management with environment variables
"""

import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional


def get_resource_path(relative_path):
    """Get absolute path to resource, works for dev and PyInstaller"""
    try:
        base_path = sys._MEIPASS  # PyInstaller bundle
    except AttributeError:
        base_path = Path(__file__).parent  # Running from source

    return Path(base_path) / relative_path


def load_env():
    """Load environment variables from .env file if exists"""
    env_file = get_resource_path(".env")
    if env_file.exists():
        with open(env_file) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, value = line.split("=", 1)
                    os.environ.setdefault(key.strip(), value.strip())


# Load .env file on import
load_env()


def _load_settings_file() -> Dict[str, Any]:
    """Read the JSON settings file pointed to by SCREENPILOT_CONFIG (or the bundled default)."""
    override = os.getenv("SCREENPILOT_CONFIG")
    path = Path(override) if override else get_resource_path("agent_config.json")
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return {}


# Environment variables holding credentials, per model provider
API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "google": "GOOGLE_API_KEY",
    "custom": "CUSTOM_MODEL_API_KEY",
}


class Config:
    """Application configuration with environment variables support"""

    APP_NAME = "ScreenPilot"
    SETTINGS: Dict[str, Any] = _load_settings_file()

    @staticmethod
    def get_app_dir() -> Path:
        """Get application directory based on OS"""
        if os.name == "nt":  # Windows
            app_data = Path(os.environ.get("APPDATA", ""))
            return app_data / Config.APP_NAME
        else:  # Linux/Mac
            return Path.home() / ".screenpilot"

    @staticmethod
    def get_logs_dir() -> Path:
        """Get logs directory"""
        return Config.get_app_dir() / "logs"

    @staticmethod
    def reload() -> None:
        """Re-read the settings file (used after SCREENPILOT_CONFIG changes)."""
        Config.SETTINGS = _load_settings_file()

    @staticmethod
    def get_setting(key_path: str, default=None):
        """
        Get nested config value using dot notation.

        Examples:
            get_setting('agent.max_iterations')
            get_setting('model.timeout')
            get_setting('browser.viewport.width')

        Args:
            key_path: Dot-separated path to setting
            default: Default value if key not found

        Returns:
            Config value or default
        """
        value = Config.SETTINGS

        for key in key_path.split("."):
            if isinstance(value, dict):
                value = value.get(key)
                if value is None:
                    return default
            else:
                return default

        # Handle environment variable placeholders like ${OPENAI_API_KEY}
        if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            return os.getenv(value[2:-1], default)

        return value if value is not None else default

    @staticmethod
    def get_timeout(timeout_name: str, default: float = 60) -> float:
        """Get specific timeout value in seconds"""
        return Config.get_setting(f"timeouts.{timeout_name}", default)

    @staticmethod
    def get_api_key(provider: str) -> Optional[str]:
        """
        Resolve the credential for a model provider.

        The settings file wins (``models.<provider>.api_key``), then the
        provider's environment variable.
        """
        configured = Config.get_setting(f"models.{provider}.api_key")
        if configured:
            return configured
        env_var = API_KEY_ENV.get(provider)
        return os.getenv(env_var) if env_var else None

    @staticmethod
    def build_agent_config(
        operator_type: str,
        provider: Optional[str] = None,
        model_name: Optional[str] = None,
        name: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ):
        """
        Build an AgentConfig from the settings file and environment.

        Args:
            operator_type: 'local_computer', 'web_browser' or 'hybrid'
            provider: Model provider; defaults to 'model.provider' setting
            model_name: Model name; defaults to the provider's configured model
            name: Display name for the agent
            overrides: Extra agent settings (e.g. {'max_iterations': 5})

        Returns:
            AgentConfig instance
        """
        from screenpilot.models import AgentConfig

        provider = provider or Config.get_setting("model.provider", "openai")
        settings = dict(Config.get_setting(f"agents.{operator_type}", {}))
        settings.update(overrides or {})
        operator_settings = dict(Config.get_setting(f"operators.{operator_type}", {}))
        operator_settings.setdefault("timeout", Config.get_timeout("browser_wait", 30) * 1000)

        return AgentConfig(
            name=name or f"{operator_type} agent",
            model={
                "provider": provider,
                "name": model_name or Config.get_setting(f"models.{provider}.name"),
                "api_key": Config.get_api_key(provider) or "",
                "base_url": Config.get_setting(f"models.{provider}.base_url"),
                "parameters": Config.get_setting(f"models.{provider}.parameters", {}),
                "timeout": Config.get_timeout("model", 60),
            },
            operator={
                "type": operator_type,
                "settings": operator_settings,
            },
            settings=settings,
        )


# Export singleton config instance
config = Config()
