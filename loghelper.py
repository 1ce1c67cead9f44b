# loghelper.py
import sys, logging, os, time
from datetime import datetime

# ───────────────────────────────
# Force UTF-8 for all console output (Windows safe)
# ───────────────────────────────
try:
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")
except Exception:
    pass

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Global logger instance; handlers are attached by setup_logger()
logger = logging.getLogger("linkgate")
logger.setLevel(logging.INFO)


def prune_old_logs(log_dir: str, retention_days: int) -> int:
    """Delete log files older than the retention window."""
    removed = 0
    now = time.time()
    for f in os.listdir(log_dir):
        path = os.path.join(log_dir, f)
        if os.path.isfile(path) and not os.path.islink(path) and now - os.path.getmtime(path) > retention_days * 86400:
            os.remove(path)
            removed += 1
    return removed


def _point_latest(log_dir: str, log_file: str):
    latest_link = os.path.join(log_dir, "latest.log")
    try:
        if os.path.lexists(latest_link):
            os.remove(latest_link)
        os.symlink(os.path.basename(log_file), latest_link)
    except OSError:
        with open(latest_link, "w", encoding="utf-8") as f:
            f.write(f"Redirect → {os.path.basename(log_file)}\n")


def setup_logger(log_dir: str = "logs", retention_days: int = 7, level=logging.INFO):
    """Configure timestamped log file + console logger (UTF-8 safe)."""
    logger.setLevel(level)

    # Avoid duplicate handlers if called twice
    if logger.handlers:
        return logger

    os.makedirs(log_dir, exist_ok=True)
    prune_old_logs(log_dir, retention_days)

    # Generate a unique log filename each run
    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_file = os.path.join(log_dir, f"{timestamp}.log")

    log_format = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    # ───────────────────────────────
    # File handler (new file each restart)
    # ───────────────────────────────
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(log_format)

    # ───────────────────────────────
    # Console handler
    # ───────────────────────────────
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(log_format)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    _point_latest(log_dir, log_file)

    logger.info("──────────────────────────────────────────────")
    logger.info(f"🪄 New session started: {timestamp}")
    logger.info("──────────────────────────────────────────────")

    return logger
