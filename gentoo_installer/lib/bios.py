"""Legacy BIOS boot: syslinux on the BIOS partition plus the GPT protective MBR."""

from __future__ import annotations

import logging
import os
from typing import Optional

from ..config import InstallConfig
from ..errors import ProvisioningError
from .artifacts import BootArtifactSet
from .chroot import target_runner
from .cmdline import render_cmdline
from .command import Runner, run_cmd
from .devices import DeviceResolver
from .initramfs import InitramfsBuilder
from .kernel import commit_kernel, discard_staged, newest_kernel, stage_kernel
from .replay import CommandRecord, execute, write_replay_script

logger = logging.getLogger(__name__)

BIOS_MOUNT = "/boot/bios"
BIOS_KERNEL = "/boot/bios/vmlinuz-current"
BIOS_INITRAMFS = "/boot/bios/initramfs.img"
SYSLINUX_DIR = "/boot/bios/syslinux"
SYSLINUX_CFG = "/boot/bios/syslinux/syslinux.cfg"
SYSLINUX_LOADER = "/boot/bios/syslinux/ldlinux.sys"
BIOS_REPLAY_SCRIPT = "/boot/bios/syslinux_install.sh"
GPT_MBR_IMAGE = "/usr/share/syslinux/gptmbr.bin"
MBR_BOOTCODE_BYTES = 440


def render_syslinux_cfg(cmdline: str) -> str:
    return (
        "DEFAULT gentoo\n"
        "PROMPT 0\n"
        "TIMEOUT 0\n"
        "\n"
        "LABEL gentoo\n"
        "\tLINUX ../vmlinuz-current\n"
        f"\tAPPEND initrd=../initramfs.img {cmdline}\n"
    )


def syslinux_install(biosdev: str) -> CommandRecord:
    return CommandRecord.of("syslinux", "--directory", "syslinux", "--install", biosdev)


def mbr_write(gptdev: str) -> CommandRecord:
    # conv=notrunc: only the boot code is replaced, the partition table after it stays.
    return CommandRecord.of(
        "dd",
        f"bs={MBR_BOOTCODE_BYTES}",
        "conv=notrunc",
        "count=1",
        f"if={GPT_MBR_IMAGE}",
        f"of={gptdev}",
    )


class BiosBootProvisioner:
    def __init__(
        self,
        config: InstallConfig,
        resolver: DeviceResolver,
        initramfs: Optional[InitramfsBuilder] = None,
        *,
        run: Runner = run_cmd,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.initramfs = initramfs or InitramfsBuilder(config, run=run)
        # syslinux and dd read their files from the installed system.
        self._run = target_runner(config.target_root, run)

    def _write_config(self, cmdline: str) -> None:
        cfg = self.config.path(SYSLINUX_CFG)
        if self.config.dry_run:
            logger.info("Would write %s", str(cfg))
            return
        try:
            cfg.write_text(render_syslinux_cfg(cmdline), encoding="utf-8")
        except OSError as e:
            raise ProvisioningError(f"Could not save generated {SYSLINUX_CFG}: {e}") from e
        logger.info("Wrote %s", str(cfg))

    def _require_bootloader_files(self) -> None:
        if self.config.dry_run:
            return
        for p in (BIOS_KERNEL, BIOS_INITRAMFS, SYSLINUX_LOADER, SYSLINUX_CFG):
            if not self.config.path(p).is_file():
                raise ProvisioningError(f"Refusing to write MBR: {p} is missing")
        mbr = self.config.path(GPT_MBR_IMAGE)
        if not mbr.is_file() or mbr.stat().st_size < MBR_BOOTCODE_BYTES:
            raise ProvisioningError(f"Refusing to write MBR: {GPT_MBR_IMAGE} missing or shorter than {MBR_BOOTCODE_BYTES} bytes")

    def install(self, kernel_source_dir: str, bios_disk_id: str) -> BootArtifactSet:
        dry_run = self.config.dry_run

        kernel = newest_kernel(self.config.path(kernel_source_dir))
        dst = self.config.path(BIOS_KERNEL)
        staged = stage_kernel(kernel, dst, dry_run=dry_run)
        try:
            image = self.initramfs.build(BIOS_INITRAMFS)
        except Exception:
            discard_staged(staged)
            raise
        commit_kernel(staged, dst, dry_run=dry_run)

        biosdev = self.resolver.resolve(bios_disk_id)
        gptdev = self.resolver.resolve_parent_gpt(bios_disk_id)
        cmdline = render_cmdline(self.config, self.resolver)

        logger.info("Installing syslinux on %s", biosdev)
        syslinux_dir = self.config.path(SYSLINUX_DIR)
        if not dry_run:
            try:
                syslinux_dir.mkdir(parents=True, exist_ok=True)
                os.chmod(syslinux_dir, 0o700)
            except OSError as e:
                raise ProvisioningError(f"Could not create {SYSLINUX_DIR}: {e}") from e

        install_rec = syslinux_install(biosdev)
        execute(install_rec, run=self._run, dry_run=dry_run)
        self._write_config(cmdline)

        self._require_bootloader_files()
        logger.info("Copying syslinux MBR record to %s", gptdev)
        mbr_rec = mbr_write(gptdev)
        execute(mbr_rec, run=self._run, dry_run=dry_run)

        write_replay_script(
            self.config.path(BIOS_REPLAY_SCRIPT),
            [install_rec, mbr_rec],
            description=[
                "The commands that installed syslinux and its MBR when this system was installed.",
                "Re-run after replacing a disk.",
            ],
            dry_run=dry_run,
        )

        return BootArtifactSet(
            firmware="bios",
            kernel=BIOS_KERNEL,
            initramfs=image.path,
            mbr_record=mbr_rec,
            config_file=SYSLINUX_CFG,
            replay_scripts=[image.replay_script, BIOS_REPLAY_SCRIPT],
        )
