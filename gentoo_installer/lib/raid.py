from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Optional

from ..errors import ResolutionError
from .command import Runner, run_cmd

logger = logging.getLogger(__name__)

_MD_NODE = re.compile(r"^/dev/md\d+$")
_ACTIVE_SYNC = re.compile(r"active sync[^/]*(/dev/\S+)")
_RAID_LEVEL = re.compile(r"^\s*Raid Level\s*:\s*(\S+)", re.M)


@dataclass(frozen=True)
class RaidTopology:
    """Software RAID layout of one array as reported right now.

    Never cached: members may differ between runs (disk replacement, degraded arrays).
    """

    path: str
    level: str
    members: tuple[str, ...]


def is_raid_array(path: str, *, run: Runner = run_cmd) -> bool:
    if not _MD_NODE.match(path):
        return False
    r = run(["mdadm", "--detail", "--scan", path], check=False)
    for line in (r.stdout or "").splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "ARRAY":
            if parts[1] == path or os.path.realpath(parts[1]) == path:
                return True
    return False


def read_topology(path: str, *, run: Runner = run_cmd) -> Optional[RaidTopology]:
    """Return the array layout of ``path``, or None if it is not an md array."""

    if not is_raid_array(path, run=run):
        return None

    r = run(["mdadm", "--detail", path])
    level_match = _RAID_LEVEL.search(r.stdout or "")
    level = level_match.group(1) if level_match else "unknown"
    members = sorted({m.group(1) for m in _ACTIVE_SYNC.finditer(r.stdout or "")})
    if not members:
        raise ResolutionError(f"RAID setup detected, but no valid member disks found for {path}")

    logger.info("RAID %s (%s) members: %s", path, level, " ".join(members))
    return RaidTopology(path=path, level=level, members=tuple(members))


def enumerate_raid_members(path: str, *, run: Runner = run_cmd) -> list[str]:
    topo = read_topology(path, run=run)
    return list(topo.members) if topo else []
