"""Auto Dark - switch dark mode at sunrise and sunset for your location."""

__version__ = "1.2.0"

APP_NAME = "Auto Dark"
