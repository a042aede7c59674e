"""Gentoo installer boot provisioning (state-driven).

Core design goals:
- Resolve abstract disk ids to device nodes once, up front
- Idempotent, resumable steps
- Every firmware-facing command saved as a replayable script
- Centralized logging
"""

__all__ = []
