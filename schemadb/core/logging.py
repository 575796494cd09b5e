import logging

from schemadb.core.config import get_settings

_LOGGER_NAME = "schemadb"
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | int | None = None) -> logging.Logger:
    logger = logging.getLogger(_LOGGER_NAME)
    resolved_level = level if level is not None else get_settings().log_level
    if isinstance(resolved_level, str):
        resolved_level = resolved_level.upper()
    logger.setLevel(resolved_level)
    if not any(getattr(handler, "_schemadb_handler", False) for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._schemadb_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger
