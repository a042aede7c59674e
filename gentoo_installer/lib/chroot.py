from __future__ import annotations

import os
from typing import List, Sequence

from .command import CmdResult, Runner, run_cmd


def chroot_argv(target_root: str, argv: Sequence[str]) -> List[str]:
    """argv to run inside target root; unchanged when the target is the running system."""

    if os.path.realpath(target_root) == "/":
        return list(argv)
    return ["chroot", target_root, *argv]


def target_runner(target_root: str, run: Runner = run_cmd) -> Runner:
    """Wrap ``run`` so every command executes inside ``target_root``.

    Bind mounts of /dev, /proc and /sys under the target are expected to be
    in place already.
    """

    def _run(argv: Sequence[str], **kwargs) -> CmdResult:
        return run(chroot_argv(target_root, argv), **kwargs)

    return _run
