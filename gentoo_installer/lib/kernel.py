from __future__ import annotations

import logging
import os
import re
import shutil
from pathlib import Path
from typing import List, Tuple, Union

from ..errors import ProvisioningError, ResolutionError

logger = logging.getLogger(__name__)

KERNEL_PATTERNS = ("vmlinuz-*", "kernel-*")

_VERSION_CHUNK = re.compile(r"(\d+)")


def version_key(name: str) -> Tuple[Tuple[int, Union[int, str]], ...]:
    """Natural ordering, digits compare numerically (like ``sort -V``)."""

    key: List[Tuple[int, Union[int, str]]] = []
    for chunk in _VERSION_CHUNK.split(name):
        if not chunk:
            continue
        if chunk.isdigit():
            key.append((1, int(chunk)))
        else:
            key.append((0, chunk))
    return tuple(key)


def newest_kernel(image_dir: Path) -> Path:
    """Pick the newest kernel image in ``image_dir`` by version-ordered name."""

    candidates = {p for pattern in KERNEL_PATTERNS for p in image_dir.glob(pattern) if p.is_file()}
    if not candidates:
        raise ResolutionError(f"No kernel image (vmlinuz-*/kernel-*) found in {image_dir}")
    newest = max(candidates, key=lambda p: version_key(p.name))
    logger.info("Newest kernel image: %s", newest.name)
    return newest


def staging_path(dst: Path) -> Path:
    return dst.with_name(dst.name + ".tmp")


def stage_kernel(src: Path, dst: Path, *, dry_run: bool = False) -> Path:
    """Copy ``src`` next to ``dst`` without touching ``dst``; returns the staged file."""

    staged = staging_path(dst)
    if dry_run:
        logger.info("Would stage kernel %s -> %s", str(src), str(staged))
        return staged

    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, staged)
    except OSError as e:
        staged.unlink(missing_ok=True)
        raise ProvisioningError(f"Could not copy kernel {src} -> {staged}: {e}") from e
    return staged


def commit_kernel(staged: Path, dst: Path, *, dry_run: bool = False) -> Path:
    if dry_run:
        logger.info("Would install kernel %s", str(dst))
        return dst
    try:
        os.replace(staged, dst)
    except OSError as e:
        staged.unlink(missing_ok=True)
        raise ProvisioningError(f"Could not move kernel into place at {dst}: {e}") from e
    logger.info("Installed kernel %s", str(dst))
    return dst


def discard_staged(staged: Path) -> None:
    try:
        staged.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove staged kernel %s: %s", str(staged), e)


def kernel_version(kernel_source: Path) -> str:
    """Active kernel version from the ``/usr/src/linux -> linux-<ver>`` symlink."""

    try:
        target = os.readlink(kernel_source)
    except OSError as e:
        raise ResolutionError(f"Could not figure out kernel version from {kernel_source} symlink") from e
    name = os.path.basename(target.rstrip("/"))
    if name.startswith("linux-"):
        name = name[len("linux-"):]
    if not name:
        raise ResolutionError(f"Empty kernel version in {kernel_source} -> {target}")
    return name
