# Utilities
from .logger import get_logger
from .tasks import fire_and_forget

__all__ = ["get_logger", "fire_and_forget"]
