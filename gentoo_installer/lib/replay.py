"""Replay scripts: self-contained shell scripts reproducing a provisioning command.

Every command a provisioner runs against boot-critical state is captured as a
CommandRecord. The same record is executed and serialized here, so the script
can never drift from what actually ran. Literal tokens are frozen and quoted;
ScriptParam tokens become positional arguments of the script.
"""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence, Tuple, Union

from ..errors import ProvisioningError
from .command import CmdResult, Runner, run_cmd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScriptParam:
    name: str
    usage: str


Token = Union[str, ScriptParam]


@dataclass(frozen=True)
class CommandRecord:
    argv: Tuple[Token, ...]

    @classmethod
    def of(cls, *argv: Token) -> "CommandRecord":
        return cls(argv=tuple(argv))

    @property
    def params(self) -> List[ScriptParam]:
        return [t for t in self.argv if isinstance(t, ScriptParam)]

    def bind(self, **values: str) -> List[str]:
        """Concrete argv with every parameter substituted."""
        out: List[str] = []
        for tok in self.argv:
            if isinstance(tok, ScriptParam):
                if tok.name not in values:
                    raise ValueError(f"No value for script parameter {tok.name!r}")
                out.append(str(values[tok.name]))
            else:
                out.append(tok)
        return out

    def as_dict(self) -> Dict[str, Any]:
        return {"argv": [f"${t.name}" if isinstance(t, ScriptParam) else t for t in self.argv]}


def execute(record: CommandRecord, *, run: Runner = run_cmd, dry_run: bool = False, **values: str) -> CmdResult:
    """Run ``record`` now; the record itself stays available for the replay script."""
    return run(record.bind(**values), dry_run=dry_run)


def render_token(tok: Token) -> str:
    if isinstance(tok, ScriptParam):
        return f'"${tok.name}"'
    return shlex.quote(tok)


def render_command(record: CommandRecord) -> str:
    return " ".join(render_token(t) for t in record.argv)


def _ordered_params(records: Iterable[CommandRecord]) -> List[ScriptParam]:
    seen: Dict[str, ScriptParam] = {}
    for rec in records:
        for p in rec.params:
            seen.setdefault(p.name, p)
    return list(seen.values())


def render_script(records: Sequence[CommandRecord], *, description: Sequence[str]) -> str:
    params = _ordered_params(records)
    lines = ["#!/bin/bash"]
    lines += [f"# {d}" if d else "#" for d in description]
    lines.append("set -e")

    if params:
        for i, p in enumerate(params, start=1):
            lines.append(f'{p.name}="${{{i}:-}}"')
        check = " && ".join(f'-n "${p.name}"' for p in params)
        usage = " ".join(p.usage for p in params)
        lines.append(f'[[ {check} ]] || {{ echo "usage $0 {usage}" >&2; exit 1; }}')

    lines += [render_command(r) for r in records]
    return "\n".join(lines) + "\n"


def write_replay_script(
    path: Path,
    records: Sequence[CommandRecord],
    *,
    description: Sequence[str],
    dry_run: bool = False,
) -> Path:
    if not records:
        raise ValueError("A replay script needs at least one command")

    contents = render_script(records, description=description)
    if dry_run:
        logger.info("Would write replay script %s", str(path))
        return path

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(contents, encoding="utf-8")
        os.chmod(path, 0o755)
    except OSError as e:
        raise ProvisioningError(f"Could not write replay script {path}: {e}") from e
    logger.info("Wrote replay script %s (%d command(s))", str(path), len(records))
    return path
