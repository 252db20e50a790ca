import json
import logging
import sys
import time
from typing import Any, Dict

LOGGER_NAME = "portscanner"


def create_logger(verbose: bool = False, quiet: bool = False) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if quiet:
        logger.setLevel(logging.WARNING)
    elif verbose:
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    # Prevent duplicate handlers if called twice (tests, embedding callers)
    if logger.handlers:
        return logger

    # reports go to stdout, so logs stay on stderr
    sh = logging.StreamHandler(sys.stderr)
    sh.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    logger.addHandler(sh)
    return logger


def now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def log_event(logger: logging.Logger, event: str, fields: Dict[str, Any]) -> None:
    payload = {"ts": now_iso(), "event": event, **fields}
    logger.info(json.dumps(payload, ensure_ascii=False))
