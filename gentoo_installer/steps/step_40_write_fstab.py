from __future__ import annotations

import logging
from typing import Any, Dict

from ..context import BootCtx
from ..lib.fstab import FSTAB_PATH, FstabGenerator

logger = logging.getLogger(__name__)


class WriteFstabStep:
    step_id = "40_write_fstab"

    def __init__(self, ctx: BootCtx) -> None:
        self.ctx = ctx

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        FstabGenerator(self.ctx.config, self.ctx.resolver).generate()
        state.setdefault("execution", {}).setdefault("decisions", {})["fstab"] = FSTAB_PATH
        return state
