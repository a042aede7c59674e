from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional

from ..errors import ResolutionError

RESOLVABLE_KINDS = ("partuuid", "uuid", "ptuuid", "mdadm", "luks", "device")


class DiskRole(str, Enum):
    ROOT = "root"
    EFI = "efi"
    BIOS = "bios"
    SWAP = "swap"
    GPT_PARENT = "gpt"


@dataclass(frozen=True)
class Resolvable:
    """How a disk id is located on the running system (``kind:value``)."""

    kind: str
    value: str

    @classmethod
    def parse(cls, text: str) -> "Resolvable":
        kind, sep, value = str(text).partition(":")
        if not sep or not value:
            raise ValueError(f"Resolvable must look like 'kind:value', got {text!r}")
        if kind not in RESOLVABLE_KINDS:
            raise ValueError(f"Unknown resolvable kind {kind!r} (expected one of {', '.join(RESOLVABLE_KINDS)})")
        return cls(kind=kind, value=value)

    def __str__(self) -> str:
        return f"{self.kind}:{self.value}"


@dataclass(frozen=True)
class RoleDescriptor:
    disk_id: str
    resolvable: Resolvable
    parent_gpt_id: Optional[str] = None
    fs_type: Optional[str] = None
    mount_options: Optional[str] = None


class RoleRegistry(Mapping[str, RoleDescriptor]):
    """Read-only DiskId -> RoleDescriptor table plus the role assignments.

    Built once from the ``disks`` config section:

        ids:
          part_efi: {resolvable: "partuuid:...", gpt: gpt_a}
        roles:
          efi: {id: part_efi}
          root: {id: part_root, type: ext4, mount_opts: "defaults,noatime"}
    """

    def __init__(self, descriptors: Mapping[str, RoleDescriptor], roles: Mapping[DiskRole, str]) -> None:
        self._descriptors = MappingProxyType(dict(descriptors))
        self._roles = MappingProxyType(dict(roles))

    def __getitem__(self, disk_id: str) -> RoleDescriptor:
        try:
            return self._descriptors[disk_id]
        except KeyError:
            raise ResolutionError(f"Cannot resolve id={disk_id!r} to a block device (no table entry)") from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    @property
    def roles(self) -> Mapping[DiskRole, str]:
        return self._roles

    def has_role(self, role: DiskRole) -> bool:
        return role in self._roles

    def id_for(self, role: DiskRole) -> str:
        disk_id = self._roles.get(role)
        if disk_id is None:
            raise ResolutionError(f"No disk id assigned to role {role.value!r}")
        return disk_id

    def descriptor_for(self, role: DiskRole) -> RoleDescriptor:
        return self[self.id_for(role)]

    def parent_of(self, disk_id: str) -> str:
        parent = self[disk_id].parent_gpt_id
        if not parent:
            raise ResolutionError(f"No parent gpt disk recorded for id={disk_id!r}")
        return parent

    @classmethod
    def from_config(cls, raw: Mapping[str, Any]) -> "RoleRegistry":
        ids = raw.get("ids") or {}
        roles_raw = raw.get("roles") or {}
        if not isinstance(ids, Mapping) or not isinstance(roles_raw, Mapping):
            raise ValueError("disks.ids and disks.roles must be mappings")

        role_of: Dict[str, Dict[str, Any]] = {}
        roles: Dict[DiskRole, str] = {}
        for role_name, entry in roles_raw.items():
            try:
                role = DiskRole(str(role_name).lower())
            except ValueError:
                raise ValueError(f"Unknown disk role {role_name!r}") from None
            if isinstance(entry, str):
                entry = {"id": entry}
            disk_id = (entry or {}).get("id")
            if not disk_id:
                raise ValueError(f"disks.roles.{role.value} needs an id")
            roles[role] = str(disk_id)
            role_of[str(disk_id)] = dict(entry)

        descriptors: Dict[str, RoleDescriptor] = {}
        for disk_id, entry in ids.items():
            if isinstance(entry, str):
                entry = {"resolvable": entry}
            entry = entry or {}
            if not entry.get("resolvable"):
                raise ValueError(f"disks.ids.{disk_id} needs a resolvable")
            fs = role_of.get(str(disk_id), {})
            descriptors[str(disk_id)] = RoleDescriptor(
                disk_id=str(disk_id),
                resolvable=Resolvable.parse(entry["resolvable"]),
                parent_gpt_id=entry.get("gpt"),
                fs_type=fs.get("type") or None,
                mount_options=fs.get("mount_opts") or None,
            )

        for role, disk_id in roles.items():
            if disk_id not in descriptors:
                raise ValueError(f"disks.roles.{role.value} references unknown id {disk_id!r}")

        return cls(descriptors, roles)
