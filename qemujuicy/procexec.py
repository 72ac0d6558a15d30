import logging
import subprocess
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class ProcessExecutor:
    """
    Runs a command synchronously and keeps its output as a string.

    stderr is merged into stdout. If the process is still running when the
    timeout expires, exit_code stays None and no output is collected; the
    process is left running (a started emulator, for instance).
    Spawn errors (OSError) are raised to the caller.
    """

    def __init__(self, *command: str, timeout: float = DEFAULT_TIMEOUT):
        self.command: List[str] = [str(c) for c in command]
        self.exit_code: Optional[int] = None
        self.output = ""
        self.process = subprocess.Popen(
            self.command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
        try:
            out, _ = self.process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.debug("'%s' still running after %ss", " ".join(self.command), timeout)
            return
        self.output = out or ""
        self.exit_code = self.process.returncode

    @property
    def is_running(self) -> bool:
        return self.exit_code is None


def run_process(*command: str, timeout: float = DEFAULT_TIMEOUT) -> Optional[str]:
    """Runs a command, returns its output or None on failure or timeout."""
    cmd_string = " ".join(str(c) for c in command)
    logger.info("executing: %s", cmd_string)
    try:
        executor = ProcessExecutor(*command, timeout=timeout)
    except OSError as e:
        logger.error("Exception executing: %s: %s", cmd_string, e)
        return None
    logger.info("exit code %s -> output:\n%s", executor.exit_code, executor.output)
    if executor.exit_code != 0:
        return None
    return executor.output
