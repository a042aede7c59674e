from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping

from .lib.firmware import detect_firmware

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in {".yaml", ".yml"}


def _yaml():
    try:
        import yaml  # type: ignore
    except ImportError as e:  # pragma: no cover
        raise RuntimeError(
            "YAML state requested but PyYAML is not available. "
            "Use JSON state or install PyYAML in the live environment."
        ) from e
    return yaml


def load_state(path: str) -> Dict[str, Any]:
    """Read the state file; anything other than .yaml/.yml is JSON."""

    p = Path(path)
    if not p.exists():
        logger.info("No state at %s, starting fresh", path)
        return {}

    text = p.read_text(encoding="utf-8")
    data = (_yaml().safe_load(text) or {}) if _is_yaml(p) else json.loads(text)

    if not isinstance(data, dict):
        raise ValueError(f"State file must be an object/dict, got {type(data)}")
    return data


def save_state(path: str, state: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    if _is_yaml(p):
        text = _yaml().safe_dump(state, sort_keys=False)
    else:
        text = json.dumps(state, indent=2, sort_keys=True)
    p.write_text(text + "\n", encoding="utf-8")


def merge_config(state: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """Overlay a user config onto state["config"], one level deep for mappings."""

    cfg = state.setdefault("config", {})
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(cfg.get(key), dict):
            cfg[key].update(value)
        else:
            cfg[key] = value
    return state


def ensure_defaults(state: Dict[str, Any], *, sysfs_root: str = "/sys") -> Dict[str, Any]:
    """Fill required keys with defaults (without overriding user values).

    Firmware is detected here once and then pinned in the state, so a resumed
    run keeps provisioning for the same firmware.
    """

    state.setdefault("version", STATE_VERSION)
    state.setdefault("config", {})
    state.setdefault("execution", {})

    cfg = state["config"]
    cfg.setdefault("target_root", "/")
    cfg.setdefault("kernel_source", "/usr/src/linux")
    cfg.setdefault("kernel_image_dir", "/boot")
    cfg.setdefault("keymap_initramfs", "us")
    cfg.setdefault("dracut_cmdline", [])
    cfg.setdefault("dry_run", False)
    cfg.setdefault("disks", {"ids": {}, "roles": {}})

    features = cfg.setdefault("features", {})
    for flag in ("raid", "luks", "zfs", "btrfs", "systemd", "initramfs_sshd"):
        features.setdefault(flag, False)
    if features.get("efi") is None:
        features["efi"] = detect_firmware(sysfs_root) == "efi"
        logger.info("Detected %s firmware", "efi" if features["efi"] else "bios")

    exe = state["execution"]
    exe.setdefault("current_step", None)
    exe.setdefault("completed_steps", [])
    exe.setdefault("errors", [])
    exe.setdefault("warnings", [])

    return state


def mark_step_completed(state: Dict[str, Any], step_id: str) -> None:
    completed = state.setdefault("execution", {}).setdefault("completed_steps", [])
    if step_id not in completed:
        completed.append(step_id)


def is_step_completed(state: Dict[str, Any], step_id: str) -> bool:
    exe = state.get("execution") or {}
    return step_id in (exe.get("completed_steps") or [])
