import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LEVEL = logging.INFO

# chatty at DEBUG/INFO, kept at WARNING unless the service itself is quieter
THIRD_PARTY_LOGGERS = ("aiosqlite", "multipart.multipart", "python_multipart.multipart")

logging.basicConfig(
    level=DEFAULT_LEVEL,
    format=LOG_FORMAT,
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

def set_log_level(level_name: str):
    """Apply the configured LOG_LEVEL; unknown names fall back to INFO."""
    level = logging.getLevelName((level_name or "").upper())
    if not isinstance(level, int):
        level = DEFAULT_LEVEL
    logging.getLogger().setLevel(level)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
