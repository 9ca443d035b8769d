import logging
import os
from logging.handlers import RotatingFileHandler
from datetime import datetime


def setup_logging(file_prefix, log_dir='Logs', level=logging.INFO, console=True):
    """
    Log fee activity to a rotating, timestamped file in log_dir.

    Replaces any handlers installed by an earlier run in the same process, so
    each simulation writes to its own file.

    Returns:
        Path of the log file
    """
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    log_file = os.path.join(log_dir, f'{file_prefix}_{timestamp}.log')

    handlers = [RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)]
    if console:
        handlers.append(logging.StreamHandler())

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers,
        force=True,
    )
    logging.info(f"Logging to {log_file}")
    return log_file
