import pytest

from gentoo_installer.context import BootCtx
from gentoo_installer.errors import ResolutionError
from gentoo_installer.steps import InstallKernelStep, MountBootStep, ResolveRolesStep, WriteFstabStep

from conftest import BIOS_DISKS, EFI_DISKS, add_partition, chrooted, touch_output, uuids


def state_for(target, disks, **features):
    return {
        "config": {
            "target_root": str(target),
            "features": {"efi": True, **features},
            "disks": disks,
        },
        "execution": {},
    }


def test_resolve_roles_records_devices(target, runner, sysfs, blockdevs):
    state = state_for(target, EFI_DISKS)
    ctx = BootCtx.from_state(state, run=runner, sysfs_root=str(sysfs))

    ResolveRolesStep(ctx).run(state)

    devices = state["execution"]["decisions"]["devices"]
    assert devices["efi"] == {"id": "part_efi", "path": "/dev/sda1"}
    assert devices["root"]["path"] == "/dev/sda3"
    assert state["execution"]["decisions"]["firmware"] == "efi"


def test_resolve_roles_requires_boot_role(target, runner, sysfs, blockdevs):
    state = state_for(target, EFI_DISKS, efi=False)
    ctx = BootCtx.from_state(state, run=runner, sysfs_root=str(sysfs))

    with pytest.raises(ResolutionError, match="roles.bios"):
        ResolveRolesStep(ctx).run(state)


def test_mount_boot_efi(target, runner, sysfs, blockdevs):
    state = state_for(target, EFI_DISKS)
    ctx = BootCtx.from_state(state, run=runner, sysfs_root=str(sysfs))
    runner.on("mountpoint", returncode=1)
    runner.on("mountpoint", "-q", "--", "/sys/firmware/efi/efivars", returncode=0)
    esp = str(target / "boot" / "efi")

    MountBootStep(ctx).run(state)

    assert runner.executed("mount") == [["mount", "/dev/sda1", esp]]
    assert (target / "boot" / "efi").is_dir()
    assert state["execution"]["mounts"]["boot"] == {"device": "/dev/sda1", "target": esp}


def test_mount_boot_bios_skips_efivars(target, runner, sysfs, blockdevs):
    state = state_for(target, BIOS_DISKS, efi=False)
    ctx = BootCtx.from_state(state, run=runner, sysfs_root=str(sysfs))
    runner.on("mountpoint", returncode=1)

    MountBootStep(ctx).run(state)

    assert runner.executed("mount") == [["mount", "/dev/sda2", str(target / "boot" / "bios")]]


def test_install_kernel_and_fstab_steps(target, runner, sysfs, blockdevs):
    add_partition(sysfs, "sda", "sda1", 1)
    uuids(runner, {"/dev/sda1": "efi-uuid", "/dev/sda2": "swap-uuid", "/dev/sda3": "root-uuid"})
    runner.on(*chrooted(target, "dracut"), effect=touch_output(target))
    state = state_for(target, EFI_DISKS)
    ctx = BootCtx.from_state(state, run=runner, sysfs_root=str(sysfs))

    InstallKernelStep(ctx).run(state)
    WriteFstabStep(ctx).run(state)

    artifacts = state["execution"]["artifacts"]
    assert artifacts["firmware"] == "efi"
    assert artifacts["kernel"] == "/boot/efi/vmlinuz.efi"
    assert artifacts["boot_entries"][0]["argv"][0] == "efibootmgr"
    assert (target / "etc" / "fstab").exists()
    assert state["execution"]["decisions"]["fstab"] == "/etc/fstab"
