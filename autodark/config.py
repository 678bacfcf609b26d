"""Configuration loading and validation."""

import logging
import os
import yaml
from pathlib import Path
from dataclasses import dataclass
from typing import Optional
import pytz

from autodark.schedule import ScheduleMode

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Auto Dark configuration."""

    mode: ScheduleMode = ScheduleMode.MANUAL
    address: Optional[str] = None
    timezone: str = "UTC"

    # Location services settings
    location_services: bool = True
    update_interval: int = 900
    significant_change_km: float = 3.0

    # Geocoder settings
    geocoder_user_agent: str = "autodark"
    geocoder_timeout: int = 10

    @classmethod
    def load(cls, config_path: Path) -> "Config":
        """
        Load and validate configuration from YAML file.

        Args:
            config_path: Path to configuration file

        Returns:
            Config instance

        Raises:
            ValueError: If configuration is invalid
            FileNotFoundError: If config file doesn't exist
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f)

        if not data:
            raise ValueError("Configuration file is empty")

        mode_name = data.get('mode', ScheduleMode.MANUAL.value)
        try:
            mode = ScheduleMode(mode_name)
        except ValueError:
            choices = ", ".join(m.value for m in ScheduleMode)
            raise ValueError(f"Invalid mode: {mode_name}. Must be one of: {choices}") from None

        location = data.get('location') or {}
        address = location.get('address')
        if address is not None:
            address = str(address).strip() or None

        timezone = location.get('timezone', 'UTC')
        if timezone not in pytz.all_timezones:
            raise ValueError(
                f"Invalid timezone: {timezone}. "
                f"Must be a valid IANA timezone (e.g., 'US/Pacific', 'Europe/London')"
            )

        if mode is ScheduleMode.MANUAL and address is None:
            logger.warning("Manual mode without location.address, nothing will be scheduled")

        settings = data.get('settings') or {}
        update_interval = settings.get('update_interval', 900)
        significant_change_km = settings.get('significant_change_km', 3.0)
        geocoder_timeout = settings.get('geocoder_timeout', 10)

        if update_interval < 60:
            raise ValueError(f"Update interval must be at least 60 seconds, got: {update_interval}")
        if significant_change_km <= 0:
            raise ValueError(
                f"Significant change distance must be positive, got: {significant_change_km}"
            )
        if geocoder_timeout <= 0:
            raise ValueError(f"Geocoder timeout must be positive, got: {geocoder_timeout}")

        return cls(
            mode=mode,
            address=address,
            timezone=timezone,
            location_services=bool(settings.get('location_services', True)),
            update_interval=update_interval,
            significant_change_km=significant_change_km,
            geocoder_user_agent=settings.get('geocoder_user_agent', 'autodark'),
            geocoder_timeout=geocoder_timeout,
        )


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    xdg_config_home = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
    return Path(xdg_config_home) / 'autodark' / 'config.yaml'


def create_default_config(config_path: Path) -> None:
    """Create a default configuration template file.

    Args:
        config_path: Path where the config file should be created
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)

    template = """# Auto Dark configuration

# manual: geocode location.address
# automatic_once: detect location once at startup
# automatic_continuous: keep following significant location changes
mode: automatic_continuous

location:
  address: ""            # e.g. "Paris, France" (manual mode)
  timezone: "UTC"        # IANA timezone for positions without one

settings:
  location_services: true      # Allow automatic location detection
  update_interval: 900         # Seconds between location checks
  significant_change_km: 3.0   # Minimum movement that triggers an update
  geocoder_user_agent: "autodark"
  geocoder_timeout: 10         # Seconds
"""

    config_path.write_text(template)
