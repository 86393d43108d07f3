"""
Utility helpers: environment loading and logging setup.
"""

from exam_generator.utils.env_loader import load_env
from exam_generator.utils.log_config import configure_logging

__all__ = [
    "load_env",
    "configure_logging",
]
