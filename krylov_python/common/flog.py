'''
This module provides a logger class for console and file logging with verbosity control.
It is the diagnostics channel of the solvers: convergence reports, breakdown
messages and the warnings emitted when spectral data is queried before it exists.

@note If one wants to use file logging, the environment variable PYLOGFILE should be set to a non-zero value.
@note If one wants to disable colored output, the environment variable PYLOGCOLORS should be set to '0'.

-------------------------------------------------------
file        :   krylov_python/common/flog.py
description :   Console and file logging with indentation levels and colors.
-------------------------------------------------------
'''

__all__         = [
    "Logger",
    "Colors",
    "get_global_logger"
]

import os
import re
import sys
import logging
import threading
from datetime import datetime
from typing import Optional, Union

######################################################
#! PRINT THE OUTPUT WITH A GIVEN COLOR
######################################################

class Colors:
    """
    ANSI color codes for console output.
    """

    black   = "\033[30m"
    red     = "\033[31m"
    green   = "\033[32m"
    yellow  = "\033[33m"
    blue    = "\033[34m"
    white   = "\033[0m"  # reset

    _MAPPING = {
        "black" : black,
        "red"   : red,
        "green" : green,
        "yellow": yellow,
        "blue"  : blue,
        "white" : white
    }

    def __init__(self, color : str):
        self.color = color

    def __str__(self) -> str:
        return Colors._MAPPING.get(self.color, Colors.white)

    def __repr__(self) -> str:
        return str(self)

# Regex for ANSI colour codes (CSI sequences: ESC [ ... m)
_ansi_escape = re.compile(r'\x1b\[[0-9;]*m')

class StripAnsiFormatter(logging.Formatter):
    ''' Formatter that removes the color codes, used for the file handler. '''

    def format(self, record):
        msg = super().format(record)
        return _ansi_escape.sub('', msg)

######################################################
#! PRINT THE OUTPUT WITH A GIVEN LEVEL
######################################################

ENV_LOGGER_FILE     = 'PYLOGFILE'
ENV_LOGGER_COLORS   = 'PYLOGCOLORS'

class Logger:
    """
    Logger class for handling console and file logging with verbosity control.
    """

    LEVELS = {
        logging.DEBUG   : 'debug',
        logging.INFO    : 'info',
        logging.WARNING : 'warning',
        logging.ERROR   : 'error'
    }

    LEVELS_R = {v: k for k, v in LEVELS.items()}

    def __init__(self,
                name            : str                   = "Global",
                logfile         : Optional[str]         = None,
                lvl             : Union[int, str]       = logging.INFO,
                use_ts_in_cmd   : bool                  = False):
        """
        Initialize the logger instance.

        Args:
            name (str):
                Name of the underlying ``logging`` logger.
            logfile (str):
                Name of the log file (without extension). Used only when
                the PYLOGFILE environment variable is set to a non-zero value.
            lvl (int | str):
                Logging level (default: logging.INFO).
            use_ts_in_cmd (bool):
                Whether to print a timestamp in console output.
        """
        self.now                = datetime.now()
        self.now_str            = self.now.strftime("%d_%m_%Y_%H-%M_%S")
        self.lvl                = Logger.LEVELS_R.get(lvl, logging.INFO) if isinstance(lvl, str) else lvl
        self.has_colors         = sys.stdout.isatty() and os.environ.get(ENV_LOGGER_COLORS, '1') != '0'
        self.logfile            = None

        self.logger             = logging.getLogger(name or __name__)
        self.logger.setLevel(self.lvl)
        self.logger.propagate   = False

        # one console handler per named logger
        for h in list(self.logger.handlers):
            self.logger.removeHandler(h)
            h.close()

        console_fmt = '%(asctime)s [%(levelname)s] %(message)s' if use_ts_in_cmd else '[%(levelname)s] %(message)s'
        ch          = logging.StreamHandler(sys.stdout)
        ch.setLevel(self.lvl)
        ch.setFormatter(logging.Formatter(console_fmt, datefmt="%d_%m_%Y_%H-%M_%S"))
        self.logger.addHandler(ch)

        if logfile is not None and os.environ.get(ENV_LOGGER_FILE, '0') != '0':
            self.configure("./log", logfile)

    # --------------------------------------------------------------

    @staticmethod
    def colorize(txt: str, color: Optional[str]) -> str:
        """
        Apply color to the given text (for console output).
        """
        if not color or color.lower() == 'white':
            return str(txt)
        return str(Colors(color)) + str(txt) + Colors.white

    # --------------------------------------------------------------

    def configure(self, directory: str, logfile: str = ""):
        """
        Attach a file handler writing to ``directory/<logfile>.log``.

        Args:
            directory (str):
                Path to the directory where log files will be stored.
            logfile (str):
                Base name of the file, the timestamp is used if empty.
        """
        base_name       = logfile.split('.log')[0] if len(logfile) > 0 else self.now_str
        self.logfile    = os.path.join(directory, f'{base_name}.log')
        os.makedirs(directory, exist_ok=True)

        f_handler       = logging.FileHandler(self.logfile, encoding='utf-8')
        f_handler.setLevel(self.lvl)
        f_handler.setFormatter(StripAnsiFormatter('%(asctime)s [%(levelname)s] %(message)s', datefmt="%d_%m_%Y_%H-%M-%S"))
        self.logger.addHandler(f_handler)
        self._log_message(logging.INFO, f"Log file created: {self.logfile}")

    # --------------------------------------------------------------

    @staticmethod
    def print_tab(lvl=0):
        """
        Generate indentation for message formatting.
        """
        return '\t' * lvl + ('->' if lvl > 0 else '')

    @staticmethod
    def print(msg: str, lvl=0):
        """
        Format a message with the indentation of a given level.
        """
        return f"{Logger.print_tab(lvl)}{msg}"

    # --------------------------------------------------------------

    def say(self, *args, end=True, log=logging.INFO, lvl=0, verbose=True, color=None):
        """
        Print and log multiple messages if verbosity is enabled.

        Args:
            *args           : Messages to log.
            end (bool)      : Join the messages with newlines (default: True).
            log (int | str) : Log level, either the ``logging`` constant or its name.
            lvl (int)       : Indentation level.
            verbose (bool)  : Log if True (default: True).
        """
        if isinstance(log, str):
            log = Logger.LEVELS_R.get(log.lower(), logging.DEBUG)

        if not verbose or log < self.lvl:
            return

        messages            = [str(arg) for arg in args]
        combined_message    = ' '.join(messages) if not end else '\n'.join(messages)
        if color is not None and self.has_colors:
            combined_message = self.colorize(combined_message, color)
        self._log_message(log, combined_message, lvl)

    def _log_message(self, log_level, msg, lvl = 0):
        log_function = getattr(self.logger, self.LEVELS.get(log_level, 'info'))
        log_function(Logger.print(msg, lvl))

    # --------------------------------------------------------------

    def info(self, msg: str, lvl=0, verbose=True, color=None):
        """
        Log an informational message if verbosity is enabled.
        """
        if not verbose:
            return
        if color is not None and self.has_colors:
            msg = self.colorize(msg, color)
        self.logger.info(Logger.print(msg, lvl))

    def debug(self, msg: str, lvl=0, verbose=True, color=None):
        """
        Log a debug message if verbosity is enabled.
        """
        if not verbose:
            return
        if color is not None and self.has_colors:
            msg = self.colorize(msg, color)
        self.logger.debug(Logger.print(msg, lvl))

    def warning(self, msg: str, lvl=0, verbose=True, color='yellow'):
        """
        Log a warning message if verbosity is enabled.
        """
        if not verbose:
            return
        if self.has_colors:
            msg = self.colorize(msg, color)
        self.logger.warning(Logger.print(msg, lvl))

    def error(self, msg: str, lvl=0, verbose=True, color='red'):
        """
        Log an error message if verbosity is enabled.
        """
        if not verbose:
            return
        if self.has_colors:
            msg = self.colorize(msg, color)
        self.logger.error(Logger.print(msg, lvl))

######################################################

_G_LOGGER     = None
_G_LOGGER_PID = None
_G_LOCK       = threading.Lock()

def get_global_logger(**kwargs) -> Logger:
    """
    One Logger wrapper per process (PID), safe across threads/forks.

    Args:
        **kwargs: Arguments to pass to the Logger constructor.
        - name (str): Name of the logger (default: "krylov_python").
        - lvl (int): Logging level (default: logging.INFO).
        - use_ts_in_cmd (bool): Whether to use timestamps in console output (default: True).
        - logfile (str or None): Base name of a logfile (default: None).

    Example
    -------
        >>> logger = get_global_logger()
        >>> logger.info("This is an informational message.")
        >>> logger.warning("Condition number not available.", lvl=1)
    """
    global  _G_LOGGER, _G_LOGGER_PID
    pid     = os.getpid()

    if _G_LOGGER is not None and _G_LOGGER_PID == pid:
        return _G_LOGGER

    with _G_LOCK:
        if _G_LOGGER is not None and _G_LOGGER_PID == pid:
            return _G_LOGGER

        _G_LOGGER       = Logger(
            name            = kwargs.get("name",            "krylov_python"),
            lvl             = kwargs.get("lvl",             logging.INFO),
            use_ts_in_cmd   = kwargs.get("use_ts_in_cmd",   True),
            logfile         = kwargs.get("logfile",         None),
        )
        _G_LOGGER_PID   = pid
        return _G_LOGGER

# ---------------------------------------------------------------------
#! EOF
# ---------------------------------------------------------------------
