"""Configuration handling for the WhatsApp tag bot."""

from dataclasses import dataclass
from pathlib import Path
import yaml


@dataclass
class Config:
    """Configuration settings for the bot.

    Attributes:
        bridge_url: Websocket URL of the WhatsApp bridge.
        bridge_token: Shared secret for the bridge, if required.
        request_timeout_seconds: Maximum wait for a bridge response.
        settings_path: JSON file holding owner and admin identities.
        session_timeout_minutes: Selection session inactivity timeout (0 = never).
    """

    bridge_url: str = "ws://127.0.0.1:3001"
    bridge_token: str | None = None
    request_timeout_seconds: float = 30.0
    settings_path: str = "config.json"
    session_timeout_minutes: int = 30

    def get_settings_path(self) -> Path:
        """Get settings file as expanded Path object."""
        return Path(self.settings_path).expanduser()


def load_config(path: str | Path) -> Config:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Config object with loaded values.

    Raises:
        FileNotFoundError: If config file doesn't exist.
    """
    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    # Extract sections
    bridge = data.get("bridge", {})
    settings = data.get("settings", {})
    session = data.get("session", {})

    return Config(
        bridge_url=bridge.get("url", Config.bridge_url),
        bridge_token=bridge.get("token", Config.bridge_token),
        request_timeout_seconds=bridge.get("request_timeout_seconds", Config.request_timeout_seconds),
        settings_path=settings.get("path", Config.settings_path),
        session_timeout_minutes=session.get("timeout_minutes", Config.session_timeout_minutes),
    )
