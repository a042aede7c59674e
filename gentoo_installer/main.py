from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, List, Optional

from .config import load_install_config
from .context import BootCtx
from .errors import InstallerError
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import Step, run_pipeline
from .state_store import ensure_defaults, load_state, merge_config, save_state
from .steps import InstallKernelStep, MountBootStep, ResolveRolesStep, WriteFstabStep

logger = logging.getLogger(__name__)


DEFAULT_STATE_PATH = "/var/lib/gentoo-installer/state.json"


def build_steps(ctx: BootCtx) -> List[Step]:
    return [
        ResolveRolesStep(ctx),
        MountBootStep(ctx),
        InstallKernelStep(ctx),
        WriteFstabStep(ctx),
    ]


def run(
    *,
    state_path: str = DEFAULT_STATE_PATH,
    log_path: str = DEFAULT_LOG_PATH,
    config_path: Optional[str] = None,
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
    dry_run: bool = False,
) -> Dict[str, Any]:
    """Run the boot provisioning pipeline, persisting state for resume."""

    actual_log_path = configure_logging(log_path=log_path)

    state = load_state(state_path)
    if config_path:
        merge_config(state, load_install_config(config_path).raw)
    if dry_run:
        state.setdefault("config", {})["dry_run"] = True
    state = ensure_defaults(state)

    paths = state["execution"].setdefault("paths", {})
    paths["log_path_requested"] = log_path
    paths["log_path_actual"] = actual_log_path

    try:
        ctx = BootCtx.from_state(state)
        result = run_pipeline(
            state=state,
            steps=build_steps(ctx),
            start_at=start_at,
            stop_after=stop_after,
            force=force,
        )
        state = result.state
        summary = state["execution"].setdefault("summary", {})
        summary["ran_steps"] = result.ran_steps
        summary["skipped_steps"] = result.skipped_steps
        return state
    except Exception as e:
        logger.exception("Installer failed")
        state["execution"].setdefault("errors", []).append(
            {
                "step": state["execution"].get("current_step"),
                "error": str(e),
                "type": type(e).__name__,
            }
        )
        raise
    finally:
        save_state(state_path, state)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="gentoo-installer")
    p.add_argument("--state", default=DEFAULT_STATE_PATH, help="Path to installer state (json|yaml)")
    p.add_argument("--config", default=None, help="Install config merged into the state (json|yaml)")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to installer log")
    p.add_argument("--start-at", default=None, help="Start at step_id (e.g. 30_install_kernel)")
    p.add_argument("--stop-after", default=None, help="Stop after step_id")
    p.add_argument("--force", action="store_true", help="Re-run steps even if marked completed")
    p.add_argument("--dry-run", action="store_true", help="Log mutating commands instead of running them")

    args = p.parse_args(argv)

    try:
        run(
            state_path=args.state,
            log_path=args.log,
            config_path=args.config,
            start_at=args.start_at,
            stop_after=args.stop_after,
            force=args.force,
            dry_run=args.dry_run,
        )
    except (InstallerError, ValueError, OSError) as e:
        logger.error("%s", e)
        return 1
    return 0
