from __future__ import annotations

import logging
from pathlib import Path

DEFAULT_LOG_PATH = "/var/log/gentoo-installer.log"
FALLBACK_LOG_NAME = "gentoo-installer.log"

_FORMAT = logging.Formatter(
    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S%z",
)


def _file_handler(path: str) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path)
    handler.setFormatter(_FORMAT)
    # Command stdout/stderr is logged at DEBUG and always kept in the file.
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Send every decision and command to the install log.

    When ``log_path`` is not writable (read-only live media), the log goes to
    ``./gentoo-installer.log`` instead. Returns the path actually used.
    """

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    if getattr(root, "_gentoo_installer_log_path", None):
        return root._gentoo_installer_log_path  # type: ignore[attr-defined]

    try:
        handler = _file_handler(log_path)
        chosen = log_path
    except OSError:
        chosen = str(Path.cwd() / FALLBACK_LOG_NAME)
        handler = _file_handler(chosen)
    root.addHandler(handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(_FORMAT)
        console.setLevel(level)
        root.addHandler(console)

    root._gentoo_installer_log_path = chosen  # type: ignore[attr-defined]

    logging.getLogger(__name__).info("Logging initialized (requested=%s, actual=%s)", log_path, chosen)
    return chosen
