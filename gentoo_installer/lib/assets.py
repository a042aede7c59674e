from __future__ import annotations

import logging
import shutil
from pathlib import Path

from ..errors import ProvisioningError

logger = logging.getLogger(__name__)


def copy_tree(src: str, dst: str, *, dry_run: bool = False) -> None:
    """Copy the directory ``src`` over ``dst``, keeping files already in ``dst``."""

    if not Path(src).is_dir():
        raise ProvisioningError(f"Source tree missing: {src}")

    if dry_run:
        logger.info("Would copy tree %s -> %s", src, dst)
        return

    try:
        shutil.copytree(src, dst, dirs_exist_ok=True)
    except (OSError, shutil.Error) as e:
        raise ProvisioningError(f"Could not copy {src} -> {dst}: {e}") from e
    logger.info("Copied tree %s -> %s", src, dst)
