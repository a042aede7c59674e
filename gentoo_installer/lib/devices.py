"""Map disk ids (assigned while partitioning) to the block devices present now."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from ..errors import ResolutionError
from . import block, raid
from .command import Runner, run_cmd
from .roles import DiskRole, RoleRegistry

logger = logging.getLogger(__name__)


class DeviceResolver:
    """Read-only resolution of DiskIds against the running system.

    Device paths are memoized for the lifetime of the resolver so that every
    consumer within one run sees the same answer. RAID membership is always
    queried fresh.
    """

    def __init__(
        self,
        registry: RoleRegistry,
        *,
        run: Runner = run_cmd,
        sysfs_root: str = block.SYSFS_ROOT,
    ) -> None:
        self.registry = registry
        self._run = run
        self._sysfs_root = sysfs_root
        self._paths: Dict[str, str] = {}

    def resolve(self, disk_id: str) -> str:
        if disk_id in self._paths:
            return self._paths[disk_id]

        loc = self.registry[disk_id].resolvable
        if loc.kind == "partuuid":
            dev = block.device_by_blkid_field("PARTUUID", loc.value, run=self._run)
        elif loc.kind == "uuid":
            dev = block.device_by_blkid_field("UUID", loc.value, run=self._run)
        elif loc.kind == "ptuuid":
            dev = block.device_by_ptuuid(loc.value, run=self._run)
        elif loc.kind == "mdadm":
            dev = block.device_by_mdadm_uuid(loc.value, run=self._run)
        elif loc.kind == "luks":
            dev = f"/dev/mapper/{loc.value}"
        elif loc.kind == "device":
            dev = loc.value
        else:
            raise ResolutionError(f"Cannot resolve {loc} to a device (unknown type)")

        path = block.canonicalize_device(dev)
        logger.info("Resolved id=%s (%s) -> %s", disk_id, loc, path)
        self._paths[disk_id] = path
        return path

    def resolve_role(self, role: DiskRole) -> str:
        return self.resolve(self.registry.id_for(role))

    def get_uuid(self, disk_id: str) -> str:
        return block.get_uuid(self.resolve(disk_id), run=self._run)

    def resolve_parent_gpt(self, disk_id: str) -> str:
        return self.resolve(self.registry.parent_of(disk_id))

    def is_raid_array(self, path: str) -> bool:
        return raid.is_raid_array(path, run=self._run)

    def raid_topology(self, path: str) -> Optional[raid.RaidTopology]:
        return raid.read_topology(path, run=self._run)

    def enumerate_raid_members(self, path: str) -> list[str]:
        return raid.enumerate_raid_members(path, run=self._run)

    def partition_number(self, path: str) -> Optional[int]:
        return block.partition_number(path, sysfs_root=self._sysfs_root)

    def parent_disk(self, path: str) -> Optional[str]:
        return block.parent_device(path, sysfs_root=self._sysfs_root)
