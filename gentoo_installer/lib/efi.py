"""Install kernel + initramfs onto the ESP and register firmware boot entries."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from ..config import InstallConfig
from ..errors import ProvisioningError, ResolutionError
from .artifacts import BootArtifactSet
from .cmdline import render_cmdline
from .command import Runner, run_cmd
from .devices import DeviceResolver
from .initramfs import InitramfsBuilder
from .kernel import commit_kernel, discard_staged, newest_kernel, stage_kernel
from .replay import CommandRecord, execute, write_replay_script

logger = logging.getLogger(__name__)

ESP_MOUNT = "/boot/efi"
EFI_KERNEL = "/boot/efi/vmlinuz.efi"
EFI_INITRAMFS = "/boot/efi/initramfs.img"
EFI_REPLAY_SCRIPT = "/boot/efi/efibootmgr_add_entry.sh"

ENTRY_LABEL = "gentoo"
ENTRY_LOADER = "\\vmlinuz.efi"
ENTRY_INITRD = "initrd=\\initramfs.img"
DEFAULT_ESP_PARTITION = 1

_BOOT_ORDER = re.compile(r"^BootOrder:\s*([0-9A-Fa-f]{4})", re.M)


@dataclass(frozen=True)
class EfiTarget:
    """A physical disk + partition index the firmware should boot from."""

    disk: str
    part: int


def boot_entry(target: EfiTarget, cmdline: str) -> CommandRecord:
    return CommandRecord.of(
        "efibootmgr",
        "--verbose",
        "--create",
        "--disk", target.disk,
        "--part", str(target.part),
        "--label", ENTRY_LABEL,
        "--loader", ENTRY_LOADER,
        "--unicode", f"{ENTRY_INITRD} {cmdline}",
    )


def created_boot_number(stdout: str) -> Optional[str]:
    """Number of the entry `efibootmgr --create` just added (it goes first in BootOrder)."""

    m = _BOOT_ORDER.search(stdout or "")
    return m.group(1).upper() if m else None


def delete_entry(bootnum: str) -> List[str]:
    return ["efibootmgr", "-b", bootnum, "-B"]


class EfiBootProvisioner:
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
        self._run = run
        self.warnings: List[str] = []

    def _warn(self, msg: str) -> None:
        logger.warning(msg)
        self.warnings.append(msg)

    def esp_partition_number(self, esp: str) -> int:
        num = self.resolver.partition_number(esp)
        if num is None:
            # Not verified against the partition table, the caller must confirm.
            num = DEFAULT_ESP_PARTITION
            self._warn(
                f"No partition index for {esp} (RAID-based ESP?); assuming partition {num}. "
                "Verify the boot entries point at the ESP."
            )
        return num

    def _member_target(self, member: str, esp: str) -> EfiTarget:
        part = self.resolver.partition_number(member)
        disk = self.resolver.parent_disk(member)
        if part is not None and disk:
            return EfiTarget(disk=disk, part=part)
        return EfiTarget(disk=member, part=self.esp_partition_number(esp))

    def targets(self, esp_disk_id: str) -> List[EfiTarget]:
        """One target per firmware-visible copy of the ESP.

        Firmware cannot read software RAID, so a RAID1 ESP yields one target
        per mirror member; anything else yields its parent disk only.
        """

        esp = self.resolver.resolve(esp_disk_id)
        topo = self.resolver.raid_topology(esp)
        if topo is not None:
            if topo.level != "raid1":
                raise ResolutionError(f"ESP {esp} is {topo.level}; firmware can only boot from raid1 mirrors")
            return [self._member_target(m, esp) for m in topo.members]

        part = self.esp_partition_number(esp)
        disk = self.resolver.parent_disk(esp)
        if not disk:
            disk = self.resolver.resolve_parent_gpt(esp_disk_id)
        return [EfiTarget(disk=disk, part=part)]

    def _require_boot_files(self) -> None:
        if self.config.dry_run:
            return
        for p in (EFI_KERNEL, EFI_INITRAMFS):
            if not self.config.path(p).is_file():
                raise ProvisioningError(f"Refusing to register boot entries: {p} is missing")

    def _rollback(self, created: List[Optional[str]]) -> None:
        for bootnum in reversed(created):
            if bootnum is None:
                self._warn("An entry created before the failure has an unknown number; check efibootmgr output")
                continue
            r = self._run(delete_entry(bootnum), check=False)
            if r.returncode != 0:
                self._warn(f"Could not remove partial boot entry Boot{bootnum}")
            else:
                logger.info("Removed partial boot entry Boot%s", bootnum)

    def _register(self, entries: List[CommandRecord]) -> None:
        """Create every entry, or none: earlier entries are deleted when a later one fails."""

        created: List[Optional[str]] = []
        for rec in entries:
            try:
                r = execute(rec, run=self._run, dry_run=self.config.dry_run)
            except ProvisioningError:
                logger.error("Boot entry %d of %d failed, rolling back", len(created) + 1, len(entries))
                self._rollback(created)
                raise
            if not self.config.dry_run:
                created.append(created_boot_number(r.stdout))

    def install(self, kernel_source_dir: str, esp_disk_id: str) -> BootArtifactSet:
        dry_run = self.config.dry_run
        self.warnings = []

        kernel = newest_kernel(self.config.path(kernel_source_dir))
        dst = self.config.path(EFI_KERNEL)
        staged = stage_kernel(kernel, dst, dry_run=dry_run)
        try:
            image = self.initramfs.build(EFI_INITRAMFS)
        except Exception:
            discard_staged(staged)
            raise
        commit_kernel(staged, dst, dry_run=dry_run)

        # Resolve everything before the first NVRAM write.
        cmdline = render_cmdline(self.config, self.resolver)
        entries = [boot_entry(t, cmdline) for t in self.targets(esp_disk_id)]
        self._require_boot_files()

        logger.info("Creating %d EFI boot entr%s", len(entries), "y" if len(entries) == 1 else "ies")
        self._register(entries)

        write_replay_script(
            self.config.path(EFI_REPLAY_SCRIPT),
            entries,
            description=[
                "The command(s) that created the efibootmgr entries when this system was installed.",
                "Re-run after replacing a disk or clearing NVRAM.",
            ],
            dry_run=dry_run,
        )

        return BootArtifactSet(
            firmware="efi",
            kernel=EFI_KERNEL,
            initramfs=image.path,
            boot_entries=entries,
            replay_scripts=[image.replay_script, EFI_REPLAY_SCRIPT],
            warnings=list(self.warnings),
        )
