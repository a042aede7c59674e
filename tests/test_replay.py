import os
import stat

import pytest

from gentoo_installer.errors import ProvisioningError
from gentoo_installer.lib.replay import (
    CommandRecord,
    ScriptParam,
    execute,
    render_script,
    write_replay_script,
)

KVER = ScriptParam("kver", "<kernel_version>")
OUT = ScriptParam("output", "<output>")


def test_frozen_script_quotes_literal_tokens():
    rec = CommandRecord.of("efibootmgr", "--loader", "\\vmlinuz.efi", "--unicode", "initrd=\\initramfs.img root=UUID=x")
    script = render_script([rec], description=["Recreates the boot entry."])

    assert script.splitlines() == [
        "#!/bin/bash",
        "# Recreates the boot entry.",
        "set -e",
        "efibootmgr --loader '\\vmlinuz.efi' --unicode 'initrd=\\initramfs.img root=UUID=x'",
    ]


def test_parametric_script_has_usage_guard():
    rec = CommandRecord.of("dracut", "--kver", KVER, "--force", OUT)
    script = render_script([rec], description=[])

    assert 'kver="${1:-}"' in script
    assert 'output="${2:-}"' in script
    assert '[[ -n "$kver" && -n "$output" ]] || { echo "usage $0 <kernel_version> <output>" >&2; exit 1; }' in script
    assert script.endswith('dracut --kver "$kver" --force "$output"\n')


def test_execute_binds_parameters(runner):
    rec = CommandRecord.of("dracut", "--kver", KVER, "--force", OUT)
    execute(rec, run=runner, kver="6.10.2", output="/boot/efi/initramfs.img")
    assert runner.argvs() == [["dracut", "--kver", "6.10.2", "--force", "/boot/efi/initramfs.img"]]

    with pytest.raises(ValueError, match="output"):
        rec.bind(kver="6.10.2")


def test_write_replay_script_is_executable(tmp_path):
    path = tmp_path / "boot" / "replay.sh"
    write_replay_script(path, [CommandRecord.of("true")], description=["x"])

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o755
    assert path.read_text().startswith("#!/bin/bash\n")


def test_write_replay_script_needs_commands(tmp_path):
    with pytest.raises(ValueError):
        write_replay_script(tmp_path / "x.sh", [], description=[])


def test_write_replay_script_failure(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("")
    with pytest.raises(ProvisioningError):
        write_replay_script(blocker / "x.sh", [CommandRecord.of("true")], description=[])


def test_as_dict_keeps_parameters_symbolic():
    assert CommandRecord.of("dracut", KVER).as_dict() == {"argv": ["dracut", "$kver"]}
