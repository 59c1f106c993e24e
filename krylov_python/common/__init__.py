"""
Common utilities shared by the solver modules.

**Logging and Monitoring:**
- Console and file logger with indentation levels and colors
- Process-wide global logger

Example:
    >>> from krylov_python.common import get_global_logger
    >>> logger = get_global_logger()
    >>> logger.info("Solving...", lvl=1)
"""

from .flog import Logger, Colors, get_global_logger

__all__ = ["Logger", "Colors", "get_global_logger"]
