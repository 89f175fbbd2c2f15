import logging
import os
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL_ENV = "BITCOIN_TUI_LOG_LEVEL"


def default_log_file() -> Path:
    return Path.home() / ".bitcoin-tui" / "bitcoin-tui.log"


def resolve_level(debug: bool = False) -> int:
    if debug:
        return logging.DEBUG
    name = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
    level = logging.getLevelName(name) if name else logging.WARNING
    return level if isinstance(level, int) else logging.WARNING


def setup_logging(debug: bool = False, log_file: str | Path | None = None) -> Path:
    """Send all logging to a file; the terminal belongs to the TUI."""
    path = Path(log_file).expanduser() if log_file else default_log_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=resolve_level(debug),
        format=LOG_FORMAT,
        handlers=[logging.FileHandler(path)],
        force=True,
    )
    # urllib3 logs every request at DEBUG, including the Authorization header.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return path
