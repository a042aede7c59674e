from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .replay import CommandRecord


@dataclass
class BootArtifactSet:
    """Everything one provisioning run produced for one firmware mode."""

    firmware: str
    kernel: str
    initramfs: str
    boot_entries: List[CommandRecord] = field(default_factory=list)
    mbr_record: Optional[CommandRecord] = None
    config_file: Optional[str] = None
    replay_scripts: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "firmware": self.firmware,
            "kernel": self.kernel,
            "initramfs": self.initramfs,
            "boot_entries": [r.as_dict() for r in self.boot_entries],
            "mbr_record": self.mbr_record.as_dict() if self.mbr_record else None,
            "config_file": self.config_file,
            "replay_scripts": list(self.replay_scripts),
            "warnings": list(self.warnings),
        }
