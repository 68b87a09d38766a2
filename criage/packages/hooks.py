"""
Lifecycle hook and build script execution.

Commands are shell strings run one at a time through ``sh -c``. They inherit
the environment and the console's stdio.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from criage.core.exceptions import BuildScriptError, HookError

logger = logging.getLogger(__name__)

SHELL = "sh"


def _shell(command: str, cwd: Optional[Path], env: Optional[dict] = None) -> int:
    return subprocess.run(
        [SHELL, "-c", command], cwd=str(cwd) if cwd else None, env=env
    ).returncode


def execute_hooks(
    commands: Iterable[str], cwd: Optional[Union[str, Path]] = None
) -> None:
    """
    Run hook commands in order, stopping at the first failure.

    Args:
        commands: Shell command strings
        cwd: Working directory (default: current directory)

    Raises:
        HookError: If a command cannot be started or exits non-zero
    """
    cwd = Path(cwd) if cwd else None
    for command in commands:
        logger.debug(f"Running hook: {command}")
        try:
            returncode = _shell(command, cwd)
        except OSError as e:
            raise HookError(command, -1) from e
        if returncode != 0:
            raise HookError(command, returncode)


def run_build_script(
    script: str,
    build_env: Optional[Dict[str, str]] = None,
    cwd: Optional[Union[str, Path]] = None,
) -> None:
    """
    Run the build script with the inherited environment plus build_env.

    Raises:
        BuildScriptError: If the script cannot be started or exits non-zero
    """
    env = dict(os.environ)
    env.update(build_env or {})

    logger.info(f"Running build script: {script}")
    try:
        returncode = _shell(script, Path(cwd) if cwd else None, env)
    except OSError as e:
        raise BuildScriptError(script, -1) from e
    if returncode != 0:
        raise BuildScriptError(script, returncode)


__all__ = ["execute_hooks", "run_build_script"]
