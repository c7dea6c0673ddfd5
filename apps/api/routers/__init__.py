"""Routers package."""

from . import (
    health,
    recordings,
    tasks,
)
