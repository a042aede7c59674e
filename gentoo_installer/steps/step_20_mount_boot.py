from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List

from ..context import BootCtx
from ..errors import ProvisioningError
from ..lib.bios import BIOS_MOUNT
from ..lib.efi import ESP_MOUNT
from ..lib.roles import DiskRole

logger = logging.getLogger(__name__)

EFIVARS = "/sys/firmware/efi/efivars"


class MountBootStep:
    """Mount the boot partition (and efivarfs on EFI) unless already mounted."""

    step_id = "20_mount_boot"

    def __init__(self, ctx: BootCtx) -> None:
        self.ctx = ctx

    def _is_mountpoint(self, path: str) -> bool:
        return self.ctx.run(["mountpoint", "-q", "--", path], check=False).returncode == 0

    def _mount(self, argv: List[str], mountpoint: str) -> None:
        if self._is_mountpoint(mountpoint):
            logger.info("%s already mounted", mountpoint)
            return
        if not self.ctx.dry_run:
            try:
                Path(mountpoint).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ProvisioningError(f"Could not create mountpoint {mountpoint}: {e}") from e
        self.ctx.run([*argv, mountpoint], dry_run=self.ctx.dry_run)

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = self.ctx.config

        if cfg.features.efi:
            self._mount(["mount", "-t", "efivarfs", "efivarfs"], EFIVARS)
            role, boot_dir = DiskRole.EFI, ESP_MOUNT
        else:
            role, boot_dir = DiskRole.BIOS, BIOS_MOUNT

        dev = self.ctx.resolver.resolve_role(role)
        mountpoint = str(cfg.path(boot_dir))
        logger.info("Mounting %s partition %s at %s", role.value, dev, mountpoint)
        self._mount(["mount", dev], mountpoint)

        state.setdefault("execution", {}).setdefault("mounts", {})["boot"] = {"device": dev, "target": mountpoint}
        return state
