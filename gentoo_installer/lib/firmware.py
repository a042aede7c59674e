from __future__ import annotations

from pathlib import Path


def detect_firmware(sysfs_root: str = "/sys") -> str:
    """Detect firmware type for the *currently running* environment.

    Returns: 'efi' or 'bios'.

    Note: the install config may force either mode via features.efi.
    """

    if (Path(sysfs_root) / "firmware/efi").exists():
        return "efi"
    return "bios"
