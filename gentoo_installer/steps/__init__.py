from .step_10_resolve_roles import ResolveRolesStep
from .step_20_mount_boot import MountBootStep
from .step_30_install_kernel import InstallKernelStep
from .step_40_write_fstab import WriteFstabStep

__all__ = [
    "ResolveRolesStep",
    "MountBootStep",
    "InstallKernelStep",
    "WriteFstabStep",
]
