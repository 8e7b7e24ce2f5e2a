"""External command helper shared by the SLURM backend and proxy delegation."""

from __future__ import annotations

import subprocess


def run_cmd(
    cmd: list[str],
    timeout: float = 30.0,
    input: str | None = None,
    env: dict[str, str] | None = None,
) -> tuple[int, str, str]:
    """
    Run a command with timeout.

    Args:
        cmd: Command and arguments as list.
        timeout: Timeout in seconds.
        input: Text written to the command's stdin.
        env: Environment for the command (inherits when None).

    Returns:
        Tuple of (exit_code, stdout, stderr). exit_code is -1 when the command
        could not be run or timed out.
    """
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input,
            env=env,
        )
        return result.returncode, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return -1, "", f"Command timed out after {timeout}s"
    except OSError as e:
        return -1, "", str(e)
