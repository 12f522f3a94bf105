import logging
from logging.handlers import RotatingFileHandler

from audiovisual_emotion.utils.config import LOG_DIR


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(logging.INFO)
    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(LOG_DIR / f"{name}.log", maxBytes=2_000_000, backupCount=2)
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    except OSError as e:
        # Read-only installs still get console logging
        logger.warning(f"File logging disabled for {name}: {e}")
    return logger
