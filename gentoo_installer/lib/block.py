from __future__ import annotations

import logging
import os
import shlex
import stat
from pathlib import Path
from typing import Dict, Optional

from ..errors import ResolutionError
from .command import Runner, run_cmd

logger = logging.getLogger(__name__)

SYSFS_ROOT = "/sys"


def is_block_device(path: str) -> bool:
    try:
        return stat.S_ISBLK(os.stat(path).st_mode)
    except OSError:
        return False


def device_exists(path: str) -> bool:
    return os.path.exists(path)


def canonicalize_device(dev: str) -> str:
    """Resolve symlinks (/dev/disk/by-*, /dev/md/name) to the kernel device node."""

    real = os.path.realpath(dev)
    if not is_block_device(real):
        raise ResolutionError(f"{dev} ({real}) is not a block device")
    return real


def _parse_export(text: str) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for line in (text or "").splitlines():
        key, sep, value = line.strip().partition("=")
        if sep:
            fields[key] = value
    return fields


def device_by_blkid_field(field: str, value: str, *, run: Runner = run_cmd) -> str:
    # Drop stale cache entries first, devices may have been recreated this run.
    run(["blkid", "-g"], check=False)
    r = run(["blkid", "-o", "export", "-t", f"{field}={value}"], check=False)
    devname = _parse_export(r.stdout).get("DEVNAME")
    if r.returncode != 0 or not devname:
        raise ResolutionError(f"No block device with {field}={value}")
    return devname


def device_by_ptuuid(ptuuid: str, *, run: Runner = run_cmd) -> str:
    """Return the whole disk carrying partition table ``ptuuid``."""

    r = run(["lsblk", "--all", "--path", "--pairs", "--output", "NAME,PTUUID,PARTUUID"], check=False)
    wanted = ptuuid.lower()
    for line in (r.stdout or "").splitlines():
        row = dict(tok.split("=", 1) for tok in shlex.split(line) if "=" in tok)
        if (row.get("PTUUID") or "").lower() == wanted and not row.get("PARTUUID"):
            return row["NAME"]
    raise ResolutionError(f"No disk with PTUUID={ptuuid}")


def _normalize_md_uuid(value: str) -> str:
    return value.replace(":", "").replace("-", "").lower()


def device_by_mdadm_uuid(md_uuid: str, *, run: Runner = run_cmd) -> str:
    r = run(["mdadm", "--examine", "--scan"], check=False)
    wanted = _normalize_md_uuid(md_uuid)
    for line in (r.stdout or "").splitlines():
        parts = line.split()
        if len(parts) < 2 or parts[0] != "ARRAY":
            continue
        for tok in parts[2:]:
            if tok.startswith("UUID=") and _normalize_md_uuid(tok[len("UUID="):]) == wanted:
                return parts[1]
    raise ResolutionError(f"No mdadm array with UUID={md_uuid}")


def get_uuid(dev: str, *, run: Runner = run_cmd) -> str:
    """Return filesystem UUID for a block device."""

    r = run(["blkid", "-s", "UUID", "-o", "value", dev], check=False)
    uuid = (r.stdout or "").strip()
    if not uuid:
        raise ResolutionError(f"Unable to determine UUID for {dev} (unformatted?)")
    return uuid


def _sysfs_entry(dev: str, sysfs_root: str) -> Path:
    return Path(sysfs_root) / "class" / "block" / os.path.basename(dev)


def partition_number(dev: str, *, sysfs_root: str = SYSFS_ROOT) -> Optional[int]:
    """Positional partition index from sysfs, None when ``dev`` is not a partition."""

    attr = _sysfs_entry(dev, sysfs_root) / "partition"
    try:
        return int(attr.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


def parent_device(dev: str, *, sysfs_root: str = SYSFS_ROOT) -> Optional[str]:
    """Whole-disk device holding partition ``dev``, if the kernel reports one."""

    entry = _sysfs_entry(dev, sysfs_root)
    if not (entry / "partition").exists():
        return None
    parent = os.path.basename(os.path.realpath(str(entry / "..")))
    if not parent or parent == "block":
        return None
    candidate = f"/dev/{parent}"
    if not device_exists(candidate):
        logger.debug("sysfs parent %s of %s has no device node", candidate, dev)
        return None
    return candidate
