from __future__ import annotations

from typing import List

from ..config import InstallConfig
from .devices import DeviceResolver
from .roles import DiskRole


def kernel_cmdline(config: InstallConfig, resolver: DeviceResolver) -> List[str]:
    """Kernel parameters shared by every boot entry.

    keymap first, then externally contributed fragments (e.g. LUKS unlock
    parameters), then the root UUID unless the root filesystem locates itself.
    """

    params = [f"rd.vconsole.keymap={config.keymap_initramfs}"]
    params.extend(config.dracut_cmdline)
    if not config.features.zfs:
        root_id = resolver.registry.id_for(DiskRole.ROOT)
        params.append(f"root=UUID={resolver.get_uuid(root_id)}")
    return params


def render_cmdline(config: InstallConfig, resolver: DeviceResolver) -> str:
    return " ".join(kernel_cmdline(config, resolver))
