import logging
import sys
from typing import List, Optional, Union

from pythonjsonlogger import jsonlogger

JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s %(pathname)s %(lineno)d"
QUIET_LOGGERS = {"aiosqlite": logging.WARNING, "watchfiles": logging.ERROR, "passlib": logging.ERROR}


class ServiceJsonFormatter(jsonlogger.JsonFormatter):
    """JSON records tagged with the service name and environment."""

    def __init__(self, *args, service: str = "", env: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self.service = service
        self.env = env

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("service", self.service)
        log_record.setdefault("env", self.env)


def _handlers(fmt: logging.Formatter, log_file: Optional[str]) -> List[logging.Handler]:
    stdout = logging.StreamHandler(sys.stdout)
    stdout.setFormatter(fmt)

    # errors are also printed readable on stderr
    stderr = logging.StreamHandler(sys.stderr)
    stderr.setLevel(logging.ERROR)
    stderr.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    handlers: List[logging.Handler] = [stdout, stderr]
    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError:
            logging.getLogger(__name__).warning("Cannot open log file %s", log_file)
        else:
            file_handler.setFormatter(fmt)
            handlers.append(file_handler)
    return handlers


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = "app-debug.log",
    service: str = "diamante-crm",
    env: str = "dev",
) -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers = _handlers(ServiceJsonFormatter(JSON_FIELDS, service=service, env=env), log_file)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = list(handlers)

    uvicorn_error = logging.getLogger("uvicorn.error")
    uvicorn_error.setLevel(level)
    uvicorn_error.handlers = list(handlers)
    uvicorn_error.propagate = False

    access = logging.getLogger("uvicorn.access")
    access.setLevel(level)
    access.propagate = False

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)
