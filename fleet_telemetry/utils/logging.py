"""
Logging setup for the fleet telemetry engine.

``setup_logging`` applies the ``logging`` section of the engine configuration
to the root logger: console output, an optional log file and per-component
level overrides. Components get their loggers through ``get_logger``.
"""

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from fleet_telemetry.config.models import LoggingSettings

# Marks handlers installed by setup_logging so a later call can replace them
ENGINE_HANDLER_ATTR = "_fleet_telemetry_handler"

TIMESTAMPED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
PLAIN_FORMAT = '%(name)s - %(levelname)s - %(message)s'


def setup_logging(settings: "LoggingSettings") -> List[logging.Handler]:
    """
    Configure the root logger from the engine's logging settings.

    Handlers installed by an earlier call are replaced; handlers that a host
    application or test runner attached are left in place.

    Args:
        settings: The ``logging`` section of the engine configuration

    Returns:
        The handlers that were installed
    """
    if settings.include_timestamp:
        formatter = logging.Formatter(TIMESTAMPED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')
    else:
        formatter = logging.Formatter(PLAIN_FORMAT)

    root = logging.getLogger()
    root.setLevel(settings.level)

    for handler in list(root.handlers):
        if getattr(handler, ENGINE_HANDLER_ATTR, False):
            root.removeHandler(handler)
            handler.close()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, ENGINE_HANDLER_ATTR, True)
        root.addHandler(handler)

    for name, level in settings.component_levels.items():
        logging.getLogger(name).setLevel(level)

    return handlers


def get_logger(name: str) -> logging.Logger:
    """Logger for an engine module (pass ``__name__``)."""
    return logging.getLogger(name)
