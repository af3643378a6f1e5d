"""Idempotent package lifecycle scripts.

A script runs only when ``package.json`` changed since it last succeeded.
The md5 of the descriptor is recorded per script name in a ``.depload``
JSON sidecar inside the package folder.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from typing import Any, Callable, Dict, Optional

from common.errors import ParseError
from common.logging_utils import extra_context
from common.process import run_command
from constants import Constants
from packages.descriptor import load_descriptor

logger = logging.getLogger(__name__)

DefaultScript = Callable[[str, Dict[str, Any]], Optional[str]]


def _default_preinstall(folder: str, descriptor: Dict[str, Any]) -> Optional[str]:
    """Build native addons when a build descriptor is present."""
    if os.path.exists(os.path.join(folder, "binding.gyp")):
        return "node-gyp rebuild"
    if os.path.exists(os.path.join(folder, "wscript")):
        return "node-waf configure build"
    return None


DEFAULT_SCRIPTS: Dict[str, DefaultScript] = {
    "preinstall": _default_preinstall,
}


def file_digest(path: str) -> Optional[str]:
    """md5 hex digest of ``path``, or None when it does not exist."""
    try:
        with open(path, "rb") as handle:
            return hashlib.md5(handle.read()).hexdigest()
    except FileNotFoundError:
        return None


class Lifecycle:
    """Runs named lifecycle scripts for package folders."""

    def __init__(
        self,
        state_file: str = Constants.STATE_FILE,
        defaults: Optional[Dict[str, DefaultScript]] = None,
        shell: str = "sh",
    ):
        self.state_file = state_file
        self.defaults = DEFAULT_SCRIPTS if defaults is None else defaults
        self.shell = shell

    def load_state(self, folder: str) -> Dict[str, Optional[str]]:
        """The recorded ``{script: digest}`` map (empty when absent)."""
        path = os.path.join(folder, self.state_file)
        try:
            with open(path, "r", encoding="utf-8") as handle:
                state = json.load(handle)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            raise ParseError(f"Corrupt lifecycle state {path}: {exc}") from exc
        if not isinstance(state, dict):
            raise ParseError(f"Corrupt lifecycle state {path}: expected an object.")
        return state

    def save_state(self, folder: str, state: Dict[str, Optional[str]]) -> None:
        """Write the state file atomically (temp file, then rename)."""
        fd, temp = tempfile.mkstemp(dir=folder, prefix=Constants.STATE_FILE_PREFIX)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(state, handle)
            os.replace(temp, os.path.join(folder, self.state_file))
        except BaseException:
            if os.path.exists(temp):
                os.remove(temp)
            raise

    def script_for(self, name: str, folder: str, descriptor: Dict[str, Any]) -> Optional[str]:
        """The explicit ``scripts.<name>`` entry, else the built-in default."""
        scripts = descriptor.get("scripts") or {}
        if isinstance(scripts, dict) and scripts.get(name):
            return scripts[name]
        default = self.defaults.get(name)
        return default(folder, descriptor) if default else None

    async def run_script(self, name: str, folder: str) -> Optional[str]:
        """Run script ``name`` in ``folder``; returns the command, if any ran."""
        descriptor_path = os.path.join(folder, Constants.PACKAGE_JSON_FILE)
        descriptor = load_descriptor(descriptor_path) if os.path.exists(descriptor_path) else {}
        script = self.script_for(name, folder, descriptor)
        if not script:
            return None
        logger.info(
            "Running %s script: %s",
            name,
            script,
            extra=extra_context(event="lifecycle", component="lifecycle", action=name, target=folder),
        )
        await run_command(self.shell, ["-c", script], cwd=folder)
        return script

    async def maybe_run(self, name: str, folder: str) -> bool:
        """Run ``name`` unless the descriptor is unchanged since its last run.

        Returns:
            True when the script step ran (and its digest was recorded).

        Raises:
            TransportError: if the script fails; nothing is recorded then.
        """
        digest = file_digest(os.path.join(folder, Constants.PACKAGE_JSON_FILE))
        state = self.load_state(folder)
        if name in state and state[name] == digest:
            logger.debug(
                "Skipping unchanged %s",
                name,
                extra=extra_context(event="lifecycle", component="lifecycle", action=name, outcome="skipped"),
            )
            return False
        await self.run_script(name, folder)
        state[name] = digest
        self.save_state(folder, state)
        return True
