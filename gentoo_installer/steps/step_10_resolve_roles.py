from __future__ import annotations

import logging
from typing import Any, Dict

from ..context import BootCtx
from ..errors import ResolutionError
from ..lib.roles import DiskRole

logger = logging.getLogger(__name__)


class ResolveRolesStep:
    step_id = "10_resolve_roles"

    def __init__(self, ctx: BootCtx) -> None:
        self.ctx = ctx

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        registry = self.ctx.registry
        features = self.ctx.config.features

        boot_role = DiskRole.EFI if features.efi else DiskRole.BIOS
        for required in (DiskRole.ROOT, boot_role):
            if not registry.has_role(required):
                raise ResolutionError(f"config.disks.roles.{required.value} is required for {features.firmware} installs")

        devices: Dict[str, Any] = {}
        for role, disk_id in registry.roles.items():
            devices[role.value] = {"id": disk_id, "path": self.ctx.resolver.resolve(disk_id)}

        decisions = state.setdefault("execution", {}).setdefault("decisions", {})
        decisions["firmware"] = features.firmware
        decisions["devices"] = devices
        logger.info("Resolved %d role(s), firmware=%s", len(devices), features.firmware)
        return state
