"""Logging configuration for audiofeed."""
import logging
import logging.handlers
from datetime import datetime, timedelta
from pathlib import Path

# Third-party loggers that are too chatty at DEBUG
QUIET_LOGGERS = ["urllib3", "requests"]


def setup_logging(log_dir: Path, retention_days: int = 30, verbose: bool = False):
    """Log to a daily file (DEBUG) and the console (INFO, DEBUG if verbose).

    Args:
        log_dir: Directory for log files (created if missing)
        retention_days: Days of log files to keep
        verbose: Console at DEBUG level
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    cleanup_old_logs(log_dir, retention_days)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    log_file = log_dir / f"{datetime.now().strftime('%Y-%m-%d')}.log"
    file_handler = logging.handlers.TimedRotatingFileHandler(
        filename=log_file,
        when='midnight',
        backupCount=retention_days,
        encoding='utf-8',
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s.%(msecs)03d [%(levelname)s] %(threadName)s %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter('[%(asctime)s] %(message)s', datefmt='%H:%M:%S'))
    root_logger.addHandler(console_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def cleanup_old_logs(log_dir: Path, retention_days: int):
    """Delete YYYY-MM-DD.log files older than retention_days."""
    if not log_dir.exists():
        return

    cutoff_date = datetime.now() - timedelta(days=retention_days)

    for log_file in log_dir.glob('*.log'):
        try:
            file_date = datetime.strptime(log_file.stem, '%Y-%m-%d')
        except ValueError:
            # Not one of ours
            continue
        if file_date < cutoff_date:
            try:
                log_file.unlink()
            except OSError:
                continue
            logging.debug(f"Deleted old log file: {log_file.name}")
