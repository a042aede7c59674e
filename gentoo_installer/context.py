from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

from .config import InstallConfig
from .lib.command import Runner, run_cmd
from .lib.devices import DeviceResolver
from .lib.roles import RoleRegistry


@dataclass(frozen=True)
class BootCtx:
    """Immutable inputs shared by every step of one run.

    The resolver is shared too, so each disk id is resolved once per run.
    """

    config: InstallConfig
    registry: RoleRegistry
    resolver: DeviceResolver
    run: Runner = run_cmd

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    @classmethod
    def from_state(cls, state: Dict[str, Any], *, run: Runner = run_cmd, sysfs_root: str = "/sys") -> "BootCtx":
        config = InstallConfig(raw=dict(state.get("config") or {}))
        registry = RoleRegistry.from_config(config.disks)
        resolver = DeviceResolver(registry, run=run, sysfs_root=sysfs_root)
        return cls(config=config, registry=registry, resolver=resolver, run=run)
