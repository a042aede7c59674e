import pytest

from gentoo_installer.errors import ProvisioningError
from gentoo_installer.lib.bios import BiosBootProvisioner, render_syslinux_cfg
from gentoo_installer.lib.devices import DeviceResolver
from gentoo_installer.lib.initramfs import InitramfsBuilder

from conftest import BIOS_DISKS, chrooted, make_config, make_resolver, touch_output, uuids


@pytest.fixture
def gptmbr(target):
    mbr = target / "usr" / "share" / "syslinux" / "gptmbr.bin"
    mbr.parent.mkdir(parents=True)
    mbr.write_bytes(b"\xeb" * 440)
    return mbr


def provisioner(target, runner, sysfs, **extra):
    cfg = make_config(target, features={"efi": False}, disks=BIOS_DISKS, **extra)
    uuids(runner, {"/dev/sda3": "root-uuid"})
    runner.on(*chrooted(target, "dracut"), effect=touch_output(target))

    def install_loader(argv):
        (target / "boot" / "bios" / "syslinux" / "ldlinux.sys").write_bytes(b"ldlinux")

    runner.on(*chrooted(target, "syslinux"), effect=install_loader)
    resolver = make_resolver(cfg, runner, sysfs)
    return BiosBootProvisioner(cfg, resolver, InitramfsBuilder(cfg, run=runner), run=runner)


def test_syslinux_cfg_layout():
    assert render_syslinux_cfg("root=UUID=r") == (
        "DEFAULT gentoo\n"
        "PROMPT 0\n"
        "TIMEOUT 0\n"
        "\n"
        "LABEL gentoo\n"
        "\tLINUX ../vmlinuz-current\n"
        "\tAPPEND initrd=../initramfs.img root=UUID=r\n"
    )


def test_install_writes_loader_config_and_mbr(target, runner, sysfs, blockdevs, gptmbr, monkeypatch):
    prov = provisioner(target, runner, sysfs)

    def unexpected(*args, **kwargs):
        raise AssertionError("BIOS install must not look up ESP partition indexes")

    monkeypatch.setattr(DeviceResolver, "partition_number", unexpected)
    monkeypatch.setattr(DeviceResolver, "parent_disk", unexpected)

    artifacts = prov.install("/boot", "part_bios")

    assert runner.argvs("efibootmgr") == []
    assert runner.argvs("mdadm") == []

    assert (target / "boot" / "bios" / "vmlinuz-current").read_bytes() == b"new kernel"
    assert runner.in_target("syslinux") == [["syslinux", "--directory", "syslinux", "--install", "/dev/sda2"]]
    assert runner.in_target("dd") == [
        ["dd", "bs=440", "conv=notrunc", "count=1", "if=/usr/share/syslinux/gptmbr.bin", "of=/dev/sda"]
    ]

    cfg = (target / "boot" / "bios" / "syslinux" / "syslinux.cfg").read_text()
    assert "\tAPPEND initrd=../initramfs.img rd.vconsole.keymap=de-latin1-nodeadkeys root=UUID=root-uuid\n" in cfg

    script = (target / "boot" / "bios" / "syslinux_install.sh").read_text().splitlines()
    assert script[-2:] == [
        "syslinux --directory syslinux --install /dev/sda2",
        "dd bs=440 conv=notrunc count=1 if=/usr/share/syslinux/gptmbr.bin of=/dev/sda",
    ]
    assert artifacts.firmware == "bios"
    assert artifacts.config_file == "/boot/bios/syslinux/syslinux.cfg"
    assert artifacts.mbr_record is not None


def test_short_mbr_image_is_refused(target, runner, sysfs, blockdevs, gptmbr):
    gptmbr.write_bytes(b"\x00" * 100)

    with pytest.raises(ProvisioningError, match="gptmbr.bin"):
        provisioner(target, runner, sysfs).install("/boot", "part_bios")
    assert runner.in_target("dd") == []


def test_missing_loader_is_refused(target, runner, sysfs, blockdevs, gptmbr):
    prov = provisioner(target, runner, sysfs)
    runner.on(*chrooted(target, "syslinux"))

    with pytest.raises(ProvisioningError, match="ldlinux.sys"):
        prov.install("/boot", "part_bios")
    assert runner.in_target("dd") == []


def test_failing_syslinux_stops_before_mbr(target, runner, sysfs, blockdevs, gptmbr):
    prov = provisioner(target, runner, sysfs)
    runner.on(*chrooted(target, "syslinux"), "--directory", returncode=1)

    with pytest.raises(ProvisioningError):
        prov.install("/boot", "part_bios")
    assert runner.in_target("dd") == []


def test_failed_initramfs_keeps_previous_kernel(target, runner, sysfs, blockdevs, gptmbr):
    previous = target / "boot" / "bios" / "vmlinuz-current"
    previous.parent.mkdir(parents=True)
    previous.write_bytes(b"previous")
    prov = provisioner(target, runner, sysfs)
    runner.on(*chrooted(target, "dracut"), returncode=1)

    with pytest.raises(ProvisioningError):
        prov.install("/boot", "part_bios")
    assert previous.read_bytes() == b"previous"
    assert not (target / "boot" / "bios" / "vmlinuz-current.tmp").exists()
    assert runner.in_target("syslinux") == []
