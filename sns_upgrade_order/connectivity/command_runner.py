"""
Thin wrapper around the external binaries the validator drives.

ic-admin, sns-quill, sns, dfx and idl2json are all invoked through
CommandRunner so that failures are classified the same way everywhere:
a binary that cannot be started is a CommandError, anything that starts
and then fails or hangs is a TransientNetworkError the caller may retry.
"""

import subprocess
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

from ..core.constants import COMMAND_TIMEOUT
from ..core.exceptions import CommandError, TransientNetworkError


class CommandRunner:
    """Runs external commands and returns their stdout."""

    def __init__(self, timeout: float = COMMAND_TIMEOUT):
        self.timeout = timeout

    def run(
        self,
        args: Sequence[str],
        input: Optional[str] = None,
        cwd: Optional[Path] = None,
    ) -> str:
        """
        Run a command to completion.

        Args:
            args: Program and arguments
            input: Optional text piped to stdin
            cwd: Optional working directory

        Returns:
            Captured stdout

        Raises:
            CommandError: If the program does not exist or cannot be executed
            TransientNetworkError: On non-zero exit or timeout
        """
        args = [str(arg) for arg in args]
        program = Path(args[0]).name
        logger.debug(f"Running {program}: {' '.join(args[1:])}")

        try:
            completed = subprocess.run(
                args,
                input=input,
                cwd=cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise CommandError(
                f"Cannot execute {args[0]}: {e}",
                "Check that the binary path in the environment is correct",
            ) from e
        except subprocess.TimeoutExpired as e:
            raise TransientNetworkError(
                f"{program} did not finish within {self.timeout}s"
            ) from e

        if completed.returncode != 0:
            stderr = completed.stderr.strip()
            raise TransientNetworkError(
                f"{program} exited with status {completed.returncode}: {stderr}"
            )

        return completed.stdout
