# contract_tester/utils/logger.py

import logging
import os

# Plain-text line format of report log files
formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S")


def setup_logger(name: str, log_file: str, level=logging.INFO, fmt: logging.Formatter = formatter) -> logging.Logger:
    """A helper function to set up a file-backed logger (appends to `log_file`)."""
    directory = os.path.dirname(os.path.abspath(log_file))
    os.makedirs(directory, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False  # Keep report lines out of the console stream

    # Avoid adding a second handler for the same file
    target = os.path.abspath(log_file)
    if not any(isinstance(h, logging.FileHandler) and h.baseFilename == target for h in logger.handlers):
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(fmt)
        logger.addHandler(handler)

    return logger


def close_logger(logger: logging.Logger) -> None:
    """Flush and detach every handler so the file is complete on disk."""
    for handler in list(logger.handlers):
        handler.flush()
        handler.close()
        logger.removeHandler(handler)
