import logging
from logging.handlers import RotatingFileHandler

from .config import settings

SECRET_KEYS = frozenset({"password", "pihole_password", "api_token", "pihole_api_token"})


def configure_logging() -> None:
    logger = logging.getLogger()
    logger.setLevel(logging.INFO)

    fmt = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s - %(message)s"
    )

    # Console
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    # Rotating file (hubs often run on SD cards)
    fh = RotatingFileHandler(
        settings.log_file, maxBytes=2_000_000, backupCount=5
    )
    fh.setFormatter(fmt)
    logger.addHandler(fh)

    # Silence noisy httpx request logging
    logging.getLogger("httpx").setLevel(logging.WARNING)


def app_logger(module: str, label: str, debug: bool = False) -> logging.Logger:
    """Per-instance child logger; ``debug`` mirrors the apps' debug toggle."""
    log = logging.getLogger(f"{module}.{label}")
    log.setLevel(logging.DEBUG if debug else logging.NOTSET)
    return log


def redact(values: dict) -> dict:
    return {k: ("[REDACTED]" if k in SECRET_KEYS and v else v) for k, v in values.items()}
