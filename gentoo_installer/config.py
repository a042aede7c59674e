from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .errors import ConfigError
from .lib.firmware import detect_firmware


@dataclass(frozen=True)
class FeatureFlags:
    """Storage and boot features, computed once up front and shared read-only."""

    raid: bool = False
    luks: bool = False
    zfs: bool = False
    btrfs: bool = False
    efi: bool = True
    systemd: bool = False
    initramfs_sshd: bool = False

    @property
    def firmware(self) -> str:
        return "efi" if self.efi else "bios"


@dataclass(frozen=True)
class InstallConfig:
    raw: Dict[str, Any]

    @property
    def features(self) -> FeatureFlags:
        f = self.raw.get("features") or {}
        efi = f.get("efi")
        if efi is None:
            efi = detect_firmware() == "efi"
        return FeatureFlags(
            raid=bool(f.get("raid", False)),
            luks=bool(f.get("luks", False)),
            zfs=bool(f.get("zfs", False)),
            btrfs=bool(f.get("btrfs", False)),
            efi=bool(efi),
            systemd=bool(f.get("systemd", False)),
            initramfs_sshd=bool(f.get("initramfs_sshd", False)),
        )

    @property
    def target_root(self) -> str:
        return str(self.raw.get("target_root") or "/")

    @property
    def kernel_source(self) -> str:
        return str(self.raw.get("kernel_source") or "/usr/src/linux")

    @property
    def kernel_image_dir(self) -> str:
        return str(self.raw.get("kernel_image_dir") or "/boot")

    @property
    def keymap_initramfs(self) -> str:
        return str(self.raw.get("keymap_initramfs") or "us")

    @property
    def dracut_cmdline(self) -> List[str]:
        return [str(x) for x in (self.raw.get("dracut_cmdline") or [])]

    @property
    def fstab_template(self) -> Optional[str]:
        return self.raw.get("fstab_template") or None

    @property
    def dry_run(self) -> bool:
        return bool(self.raw.get("dry_run", False))

    @property
    def disks(self) -> Mapping[str, Any]:
        return self.raw.get("disks") or {}

    def path(self, abs_path: str) -> Path:
        """Map an absolute path of the installed system onto target_root."""
        return Path(self.target_root) / abs_path.lstrip("/")


def load_install_config(path: str) -> InstallConfig:
    """Read a YAML or JSON install config; any failure is a ConfigError."""

    p = Path(path)
    suffix = p.suffix.lower()
    if suffix not in {".yaml", ".yml", ".json"}:
        raise ConfigError(f"{path}: install config must be YAML or JSON")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Could not read install config {path}: {e}") from e

    if suffix == ".json":
        try:
            raw = json.loads(text)
        except ValueError as e:
            raise ConfigError(f"{path} is not valid JSON: {e}") from e
    else:
        try:
            import yaml  # type: ignore
        except ImportError as e:
            raise ConfigError("PyYAML is required to read YAML install configs") from e
        try:
            raw = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"{path} is not valid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")

    return InstallConfig(raw=raw)
