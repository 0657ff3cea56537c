"""Rotating log file for the ``codepair`` package, driven by :class:`Settings`."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path

from ..services.settings import Settings, is_placeholder_api_key, redact_secret

__all__ = ["LOG_FORMAT", "SecretFilter", "configure_logging", "get_log_path"]

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_LOG_DIR = Path.home() / ".codepair" / "logs"
LOG_FILENAME = "codepair.log"

_PACKAGE_LOGGER = "codepair"
_HANDLER_NAME = "codepair-log"
_THIRD_PARTY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_LOG_PATH: Path | None = None


class SecretFilter(logging.Filter):
    """Masks the configured API key in any record that reaches a codepair handler."""

    def __init__(self, secret: str | None) -> None:
        super().__init__()
        self._secret = "" if is_placeholder_api_key(secret) else (secret or "").strip()
        self._masked = redact_secret(self._secret)

    def filter(self, record: logging.LogRecord) -> bool:
        if self._secret:
            message = record.getMessage()
            if self._secret in message:
                record.msg = message.replace(self._secret, self._masked)
                record.args = None
        return True


def configure_logging(
    settings: Settings,
    *,
    log_dir: Path | str | None = None,
    console: bool = False,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> Path:
    """Attach a rotating file handler to the ``codepair`` logger.

    The level is DEBUG when ``settings.debug_logging`` is on (prompt payload
    dumps included) and INFO otherwise. The directory comes from ``log_dir``,
    then ``settings.log_dir`` (``CODEPAIR_LOG_DIR``), then ``~/.codepair/logs``.
    The root logger is left to the host; calling again replaces the handlers
    installed by the previous call.
    """

    global _LOG_PATH
    target_dir = Path(log_dir or settings.log_dir or DEFAULT_LOG_DIR).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / LOG_FILENAME
    level = logging.DEBUG if settings.debug_logging else logging.INFO

    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    _remove_installed_handlers(package_logger)

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    secret_filter = SecretFilter(settings.api_key)
    for handler in handlers:
        handler.set_name(_HANDLER_NAME)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(secret_filter)
        package_logger.addHandler(handler)
    package_logger.setLevel(level)

    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _LOG_PATH = log_path
    return log_path


def get_log_path() -> Path | None:
    """Return the active log file, or ``None`` before :func:`configure_logging`."""

    return _LOG_PATH


def _remove_installed_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if handler.get_name() == _HANDLER_NAME:
            logger.removeHandler(handler)
            handler.close()
