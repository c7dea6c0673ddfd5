"""Models package."""

from .recording import Recording
from .task import Task
