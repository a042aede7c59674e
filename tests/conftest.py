import os
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import pytest

from gentoo_installer.config import InstallConfig
from gentoo_installer.errors import ProvisioningError
from gentoo_installer.lib import block
from gentoo_installer.lib.command import CmdResult, fmt_argv
from gentoo_installer.lib.devices import DeviceResolver
from gentoo_installer.lib.roles import RoleRegistry


class FakeRunner:
    """Stands in for run_cmd: scripted output by argv prefix, every call recorded.

    The longest matching prefix wins; on a tie the rule registered last wins.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[List[str], bool]] = []
        self._rules: List[Tuple[Tuple[str, ...], int, str, Optional[Callable[[List[str]], None]]]] = []

    def on(self, *prefix: str, stdout: str = "", returncode: int = 0, effect=None) -> "FakeRunner":
        self._rules.append((tuple(prefix), returncode, stdout, effect))
        return self

    def _match(self, argv: Sequence[str]):
        best = None
        for rule in self._rules:
            prefix = rule[0]
            if tuple(argv[: len(prefix)]) == prefix and (best is None or len(prefix) >= len(best[0])):
                best = rule
        return best

    def __call__(self, argv, *, check=True, dry_run=False, **_kwargs) -> CmdResult:
        argv = list(argv)
        self.calls.append((argv, dry_run))
        if dry_run:
            return CmdResult(argv=argv, returncode=0, stdout="", stderr="")

        rule = self._match(argv)
        returncode, stdout, effect = (rule[1], rule[2], rule[3]) if rule else (0, "", None)
        if effect is not None:
            effect(argv)
        if check and returncode != 0:
            raise ProvisioningError(f"Command failed ({returncode}): {fmt_argv(argv)}", argv=argv, returncode=returncode)
        return CmdResult(argv=argv, returncode=returncode, stdout=stdout, stderr="")

    def argvs(self, program: Optional[str] = None) -> List[List[str]]:
        return [a for a, _ in self.calls if program is None or a[0] == program]

    def executed(self, program: str) -> List[List[str]]:
        return [a for a, dry in self.calls if a[0] == program and not dry]

    def in_target(self, program: str) -> List[List[str]]:
        """Commands run through chroot, without the chroot prefix."""
        return [a[2:] for a, _ in self.calls if a[0] == "chroot" and a[2:3] == [program]]


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def blockdevs(monkeypatch):
    """Treat every /dev path as an existing block device."""
    monkeypatch.setattr(block, "is_block_device", lambda path: True)
    monkeypatch.setattr(block, "device_exists", lambda path: True)


@pytest.fixture
def sysfs(tmp_path):
    root = tmp_path / "sys"
    (root / "class" / "block").mkdir(parents=True)
    return root


def add_partition(sysfs_root: Path, disk: str, part: str, number: int) -> None:
    """Lay out sysfs like the kernel does: class/block/<part> -> devices/<disk>/<part>."""

    dev_dir = sysfs_root / "devices" / disk / part
    dev_dir.mkdir(parents=True, exist_ok=True)
    (dev_dir / "partition").write_text(f"{number}\n", encoding="utf-8")
    os.symlink(os.path.relpath(dev_dir, sysfs_root / "class" / "block"), sysfs_root / "class" / "block" / part)


@pytest.fixture
def target(tmp_path):
    """Installed system root with two kernels and the /usr/src/linux symlink."""

    root = tmp_path / "target"
    boot = root / "boot"
    boot.mkdir(parents=True)
    (boot / "vmlinuz-6.9.12-gentoo").write_bytes(b"old kernel")
    (boot / "vmlinuz-6.10.2-gentoo").write_bytes(b"new kernel")
    (root / "usr" / "src").mkdir(parents=True)
    os.symlink("linux-6.10.2-gentoo", root / "usr" / "src" / "linux")
    return root


def make_config(target_root: Path, *, features=None, disks=None, **extra) -> InstallConfig:
    raw = {
        "target_root": str(target_root),
        "features": {"efi": True, **(features or {})},
        "keymap_initramfs": "de-latin1-nodeadkeys",
        "disks": disks or {},
    }
    raw.update(extra)
    return InstallConfig(raw=raw)


def make_resolver(config: InstallConfig, runner, sysfs_root: Path) -> DeviceResolver:
    return DeviceResolver(RoleRegistry.from_config(config.disks), run=runner, sysfs_root=str(sysfs_root))


def chrooted(target_root: Path, *argv: str) -> Tuple[str, ...]:
    return ("chroot", str(target_root), *argv)


def touch_output(target_root: Path) -> Callable[[List[str]], None]:
    """Effect for a command run in the target whose last argument is the file it creates."""

    def effect(argv: List[str]) -> None:
        assert argv[:2] == ["chroot", str(target_root)], argv
        out = target_root / argv[-1].lstrip("/")
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(b"image")

    return effect


EFI_DISKS = {
    "ids": {
        "gpt_a": "device:/dev/sda",
        "part_efi": {"resolvable": "device:/dev/sda1", "gpt": "gpt_a"},
        "part_swap": {"resolvable": "device:/dev/sda2", "gpt": "gpt_a"},
        "part_root": {"resolvable": "device:/dev/sda3", "gpt": "gpt_a"},
    },
    "roles": {
        "gpt": "gpt_a",
        "efi": "part_efi",
        "swap": "part_swap",
        "root": {"id": "part_root", "type": "ext4"},
    },
}

BIOS_DISKS = {
    "ids": {
        "gpt_a": "device:/dev/sda",
        "part_bios": {"resolvable": "device:/dev/sda2", "gpt": "gpt_a"},
        "part_root": {"resolvable": "device:/dev/sda3", "gpt": "gpt_a"},
    },
    "roles": {
        "gpt": "gpt_a",
        "bios": "part_bios",
        "root": {"id": "part_root", "type": "ext4"},
    },
}


def uuids(runner: FakeRunner, mapping) -> FakeRunner:
    for dev, uuid in mapping.items():
        runner.on("blkid", "-s", "UUID", "-o", "value", dev, stdout=f"{uuid}\n")
    return runner
