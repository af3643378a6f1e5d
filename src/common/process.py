"""Running external programs (git, sh) as awaitable subprocesses."""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Sequence

from common.errors import TransportError
from common.logging_utils import Timer, extra_context, is_debug_enabled

logger = logging.getLogger(__name__)


async def run_command(
    program: str,
    args: Sequence[str],
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> str:
    """Run ``program`` with ``args`` and return its standard output.

    Args:
        program: Executable name, looked up on PATH.
        args: Arguments after the program name.
        cwd: Working directory for the child process.
        env: Replacement environment, or None to inherit.

    Returns:
        Decoded standard output.

    Raises:
        TransportError: if the program is missing or exits nonzero.
    """
    with Timer() as timer:
        if is_debug_enabled(logger):
            logger.debug(
                "Starting process",
                extra=extra_context(
                    event="process_start", component="process", action=program, target=cwd
                ),
            )
        try:
            proc = await asyncio.create_subprocess_exec(
                program,
                *args,
                cwd=cwd,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise TransportError(f"{program} could not be started: {exc}") from exc

        stdout, stderr = await proc.communicate()

    if proc.returncode != 0:
        message = stderr.decode("utf-8", "replace").strip()
        logger.error(
            "%s failed (exit code: %s): %s",
            program,
            proc.returncode,
            message,
            extra=extra_context(
                event="process_exit",
                component="process",
                action=program,
                outcome="failure",
                duration_ms=timer.duration_ms(),
            ),
        )
        raise TransportError(f"{program} failed (exit code: {proc.returncode}).", proc.returncode)

    if is_debug_enabled(logger):
        logger.debug(
            "Process finished",
            extra=extra_context(
                event="process_exit",
                component="process",
                action=program,
                outcome="success",
                duration_ms=timer.duration_ms(),
            ),
        )
    return stdout.decode("utf-8", "replace")
