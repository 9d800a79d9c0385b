"""API route modules."""

from . import tasks
from . import trickplay

__all__ = ["tasks", "trickplay"]
