"""Configuration module for the herd-health backend."""

from config.constants import (DEFAULT_SERVER_HOST,
                              HEALTHY_LABELS,
                              ROBOFLOW_API_KEY,
                              ROBOFLOW_API_URL,
                              SERVER_PORT)

__all__ = [
    "HEALTHY_LABELS",
    "ROBOFLOW_API_KEY",
    "ROBOFLOW_API_URL",
    "DEFAULT_SERVER_HOST",
    "SERVER_PORT",
]
