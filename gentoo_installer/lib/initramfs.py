"""Build the dracut initramfs for the installed kernel."""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import List

from ..config import InstallConfig
from ..errors import ProvisioningError
from .assets import copy_tree
from .chroot import target_runner
from .command import Runner, run_cmd
from .kernel import kernel_version
from .replay import CommandRecord, ScriptParam, execute, write_replay_script

logger = logging.getLogger(__name__)

DRACUT_SSHD_REPO = "https://github.com/gsauthof/dracut-sshd"
DRACUT_SSHD_MODULE = "46sshd"
DRACUT_MODULES_DIR = "/usr/lib/dracut/modules.d"
WIRED_NETWORK = "/etc/systemd/network/20-wired.network"
REPLAY_SCRIPT_NAME = "generate_initramfs.sh"

KVER = ScriptParam("kver", "<kernel_version>")
OUTPUT = ScriptParam("output", "<output>")


@dataclass(frozen=True)
class InitramfsImage:
    path: str
    kernel_version: str
    record: CommandRecord
    replay_script: str


def patch_sshd_service(text: str) -> str:
    """Run sshd in the foreground instead of notify mode, logging to stderr."""

    text = re.sub(r"^Type=notify[ \t]*$", "Type=simple", text, flags=re.M)
    text = re.sub(r"^(ExecStart=/usr/sbin/sshd) -D", r"\1 -e -D", text, flags=re.M)
    return text


class InitramfsBuilder:
    def __init__(
        self,
        config: InstallConfig,
        *,
        run: Runner = run_cmd,
        scratch_dir: str = "/tmp",
    ) -> None:
        self.config = config
        self.features = config.features
        # git and dracut run inside the installed system.
        self._run = target_runner(config.target_root, run)
        self._scratch_dir = scratch_dir

    @property
    def remote_unlock(self) -> bool:
        return self.features.systemd and self.features.initramfs_sshd

    def modules(self) -> List[str]:
        mods = ["bash"]
        if self.features.raid:
            mods.append("mdraid")
        if self.features.luks:
            mods += ["crypt", "crypt-gpg"]
        if self.features.btrfs:
            mods.append("btrfs")
        if self.features.zfs:
            mods.append("zfs")
        if self.remote_unlock:
            mods.append("systemd-networkd")
        return mods

    def command(self) -> CommandRecord:
        """dracut invocation, parametric in kernel version and output path."""

        argv: List = [
            "dracut",
            "--kver", KVER,
            "--zstd",
            "--no-hostonly",
            "--ro-mnt",
            "--add", " ".join(self.modules()),
        ]
        if self.remote_unlock:
            argv += ["--install", WIRED_NETWORK]
        argv += ["--force", OUTPUT]
        return CommandRecord.of(*argv)

    def _integrate_sshd(self) -> None:
        dry_run = self.config.dry_run
        checkout = str(PurePosixPath(self._scratch_dir) / "dracut-sshd")
        local_checkout = self.config.path(checkout)
        if local_checkout.exists() and not dry_run:
            shutil.rmtree(local_checkout)

        self._run(["git", "clone", DRACUT_SSHD_REPO, checkout], dry_run=dry_run)

        module_dst = self.config.path(DRACUT_MODULES_DIR) / DRACUT_SSHD_MODULE
        service = module_dst / "sshd.service"
        if dry_run:
            logger.info("Would install %s and patch %s", str(module_dst), str(service))
            return

        copy_tree(str(local_checkout / DRACUT_SSHD_MODULE), str(module_dst))
        try:
            service.write_text(patch_sshd_service(service.read_text(encoding="utf-8")), encoding="utf-8")
        except OSError as e:
            raise ProvisioningError(f"Could not replace sshd options in {service}: {e}") from e
        logger.info("Integrated dracut-sshd (foreground mode)")

    def build(self, output: str) -> InitramfsImage:
        logger.info("Generating initramfs %s", output)
        if self.features.initramfs_sshd and not self.features.systemd:
            logger.warning("Remote unlock over ssh requires systemd; skipping dracut-sshd")

        kver = kernel_version(self.config.path(self.config.kernel_source))
        if self.remote_unlock:
            self._integrate_sshd()

        record = self.command()
        execute(record, run=self._run, dry_run=self.config.dry_run, kver=kver, output=output)

        if not self.config.dry_run and not self.config.path(output).is_file():
            raise ProvisioningError(f"dracut reported success but {output} is missing")

        script = str(PurePosixPath(output).parent / REPLAY_SCRIPT_NAME)
        write_replay_script(
            self.config.path(script),
            [record],
            description=[
                "Regenerates the initramfs, e.g. after a kernel upgrade.",
                f"At setup time this was: {script} {kver} {output}",
            ],
            dry_run=self.config.dry_run,
        )
        return InitramfsImage(path=output, kernel_version=kver, record=record, replay_script=script)
