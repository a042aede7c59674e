from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ..config import InstallConfig
from ..errors import ProvisioningError
from .devices import DeviceResolver
from .roles import DiskRole

logger = logging.getLogger(__name__)

FSTAB_PATH = "/etc/fstab"
DEFAULT_TEMPLATE = Path(__file__).resolve().parents[1] / "data" / "fstab"

BOOT_FS_OPTIONS = "defaults,noatime,fmask=0177,dmask=0077,noexec,nodev,nosuid,discard"
DEFAULT_ROOT_OPTIONS = "defaults,noatime"


@dataclass(frozen=True)
class FstabEntry:
    spec: str
    mountpoint: str
    fstype: str
    options: str
    dump: int
    passno: int

    def render(self) -> str:
        return f"{self.spec:<46}  {self.mountpoint:<24}  {self.fstype:<6}  {self.options:<96} {self.dump} {self.passno}"


def render_fstab(entries: Sequence[FstabEntry], *, header: str = "") -> str:
    body = "".join(e.render() + "\n" for e in entries)
    if header and not header.endswith("\n"):
        header += "\n"
    return header + body


class FstabGenerator:
    """Static template + UUID keyed entries in fixed order: root, boot, swap."""

    def __init__(self, config: InstallConfig, resolver: DeviceResolver) -> None:
        self.config = config
        self.resolver = resolver

    def entries(self) -> List[FstabEntry]:
        features = self.config.features
        registry = self.resolver.registry
        out: List[FstabEntry] = []

        root: Optional[str] = registry.roles.get(DiskRole.ROOT)
        root_type = registry[root].fs_type if root else None
        if not features.zfs and root and root_type:
            out.append(
                FstabEntry(
                    spec=f"UUID={self.resolver.get_uuid(root)}",
                    mountpoint="/",
                    fstype=root_type,
                    options=registry[root].mount_options or DEFAULT_ROOT_OPTIONS,
                    dump=0,
                    passno=1,
                )
            )

        boot_role, mountpoint = (DiskRole.EFI, "/boot/efi") if features.efi else (DiskRole.BIOS, "/boot/bios")
        out.append(
            FstabEntry(
                spec=f"UUID={self.resolver.get_uuid(registry.id_for(boot_role))}",
                mountpoint=mountpoint,
                fstype="vfat",
                options=BOOT_FS_OPTIONS,
                dump=0,
                passno=2,
            )
        )

        if registry.has_role(DiskRole.SWAP):
            out.append(
                FstabEntry(
                    spec=f"UUID={self.resolver.get_uuid(registry.id_for(DiskRole.SWAP))}",
                    mountpoint="none",
                    fstype="swap",
                    options="defaults,discard",
                    dump=0,
                    passno=0,
                )
            )
        return out

    def _template(self) -> str:
        path = Path(self.config.fstab_template) if self.config.fstab_template else DEFAULT_TEMPLATE
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise ProvisioningError(f"Could not read fstab template {path}: {e}") from e

    def generate(self) -> str:
        logger.info("Generating fstab")
        # Resolve every entry before the existing fstab is touched.
        entries = self.entries()
        contents = render_fstab(entries, header=self._template())
        fstab = self.config.path(FSTAB_PATH)

        if self.config.dry_run:
            logger.info("Would write %s", str(fstab))
            return contents

        try:
            fstab.parent.mkdir(parents=True, exist_ok=True)
            fstab.write_text(contents, encoding="utf-8")
            os.chmod(fstab, 0o644)
        except OSError as e:
            raise ProvisioningError(f"Could not overwrite {FSTAB_PATH}: {e}") from e
        logger.info("Wrote %s (%d entries)", str(fstab), len(entries))
        return contents
