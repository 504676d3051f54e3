"""Logging utilities."""
import logging
import os
import sys

_FORMAT = '%(levelname).1s %(asctime)s %(filename)s:%(lineno)d] %(message)s'
_DATE_FORMAT = '%m-%d %H:%M:%S'
_DEBUG_ENV_VAR = 'YKUBE_DEBUG'


class NewLineFormatter(logging.Formatter):
    """Adds logging prefix to newlines to align multi-line messages."""

    def __init__(self, fmt, datefmt=None):
        logging.Formatter.__init__(self, fmt, datefmt)

    def format(self, record):
        msg = logging.Formatter.format(self, record)
        if record.message != '':
            parts = msg.split(record.message)
            msg = msg.replace('\n', '\r\n' + parts[0])
        return msg


_root_logger = logging.getLogger('ykube')
_default_handler = None


def _debug_enabled_by_env() -> bool:
    return os.environ.get(_DEBUG_ENV_VAR, '0').lower() in ('1', 'true')


def _setup_logger():
    global _default_handler
    _root_logger.setLevel(logging.DEBUG)
    if _default_handler is None:
        _default_handler = logging.StreamHandler(sys.stdout)
        _default_handler.flush = sys.stdout.flush
        if _debug_enabled_by_env():
            _default_handler.setLevel(logging.DEBUG)
        else:
            _default_handler.setLevel(logging.INFO)
        _root_logger.addHandler(_default_handler)
    fmt = NewLineFormatter(_FORMAT, datefmt=_DATE_FORMAT)
    _default_handler.setFormatter(fmt)
    # Setting this will avoid the message
    # being propagated to the parent logger.
    _root_logger.propagate = False


# The logger is initialized when this module is imported.
_setup_logger()


def init_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_verbosity(debug: bool) -> None:
    """Switches the console handler between INFO and DEBUG."""
    level = logging.DEBUG if debug or _debug_enabled_by_env() else logging.INFO
    _default_handler.setLevel(level)
