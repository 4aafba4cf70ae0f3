import asyncio
import logging
import os
import signal
from typing import Dict, List, Optional, Sequence

from runner.result import NodeResult

logger = logging.getLogger(__name__)


def split_lines(stdout: str) -> List[str]:
    lines = stdout.split("\n")
    if lines and lines[-1] == "":
        lines = lines[:-1]
    return lines


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


async def run_process(
    argv: Sequence[str],
    node: str,
    timeout: int = 0,
    env: Optional[Dict[str, str]] = None,
) -> NodeResult:
    """
    Run argv and capture its stdout as lines. With timeout > 0 the whole
    process group is killed once the deadline passes and a timed-out result
    is returned.
    """
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
        start_new_session=True,
    )
    try:
        if timeout:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        else:
            stdout, stderr = await proc.communicate()
    except asyncio.TimeoutError:
        _kill_group(proc)
        await proc.wait()
        logger.error(f"[{node}] Command timed out after {timeout} seconds")
        return NodeResult.timeout(node)
    except asyncio.CancelledError:
        # The step was abandoned; nothing else owns this session
        _kill_group(proc)
        raise

    err = stderr.decode(errors="replace")
    if err.strip():
        logger.warning(f"[{node}] stderr: {err.rstrip()}")

    return NodeResult(node=node, lines=split_lines(stdout.decode(errors="replace")))


class LocalExecutor:
    """Runs every node's command with bash on this machine; NODE holds the node name."""

    def __init__(self, shell: str = "bash"):
        self.shell = shell

    async def run(self, node, command: str, env_prefix: str = "", timeout: int = 0) -> NodeResult:
        env = dict(os.environ, NODE=node.name)
        return await run_process([self.shell, "-c", env_prefix + command], node.name, timeout, env=env)
