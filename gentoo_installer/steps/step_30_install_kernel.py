from __future__ import annotations

import logging
from typing import Any, Dict

from ..context import BootCtx
from ..lib.bios import BiosBootProvisioner
from ..lib.efi import EfiBootProvisioner
from ..lib.initramfs import InitramfsBuilder
from ..lib.roles import DiskRole

logger = logging.getLogger(__name__)


class InstallKernelStep:
    step_id = "30_install_kernel"

    def __init__(self, ctx: BootCtx) -> None:
        self.ctx = ctx

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        ctx = self.ctx
        cfg = ctx.config
        initramfs = InitramfsBuilder(cfg, run=ctx.run)

        if cfg.features.efi:
            provisioner = EfiBootProvisioner(cfg, ctx.resolver, initramfs, run=ctx.run)
            artifacts = provisioner.install(cfg.kernel_image_dir, ctx.registry.id_for(DiskRole.EFI))
        else:
            provisioner = BiosBootProvisioner(cfg, ctx.resolver, initramfs, run=ctx.run)
            artifacts = provisioner.install(cfg.kernel_image_dir, ctx.registry.id_for(DiskRole.BIOS))

        state.setdefault("execution", {})["artifacts"] = artifacts.as_dict()
        for w in artifacts.warnings:
            state["execution"].setdefault("warnings", []).append(w)

        logger.info("Kernel installed (firmware=%s, replay scripts: %s)", artifacts.firmware, ", ".join(artifacts.replay_scripts))
        return state
