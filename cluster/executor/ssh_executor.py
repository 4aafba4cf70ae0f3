import asyncio
import logging
import shlex
import threading

import paramiko

from cluster.executor.local_executor import split_lines
from runner.result import NodeResult

logger = logging.getLogger(__name__)


class SSHExecutor:
    """Runs commands on hosts over SSH. The node name is the host to connect to."""

    def __init__(self, user=None, password=None, key_filename=None, port=22, connect_timeout=10):
        self.user = user
        self.password = password
        self.key_filename = key_filename
        self.port = port
        self.connect_timeout = connect_timeout

    def connect(self, host: str) -> paramiko.SSHClient:
        """Open a new SSH connection; each invocation gets its own client."""
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                host,
                port=self.port,
                username=self.user,
                password=self.password,
                key_filename=self.key_filename,
                timeout=self.connect_timeout,
            )
        except Exception:
            client.close()
            raise
        return client

    @staticmethod
    def _exec(client: paramiko.SSHClient, command: str):
        _, stdout, stderr = client.exec_command(command)
        # Both streams share one channel window, so stderr is drained alongside stdout
        stderr_chunks = []
        reader = threading.Thread(target=lambda: stderr_chunks.append(stderr.read()), daemon=True)
        reader.start()
        stdout_text = stdout.read().decode(errors="replace")
        reader.join()
        stderr_text = b"".join(stderr_chunks).decode(errors="replace")
        stdout.channel.recv_exit_status()
        return stdout_text, stderr_text

    async def run(self, node, command: str, env_prefix: str = "", timeout: int = 0) -> NodeResult:
        host = node.name
        client = await asyncio.to_thread(self.connect, host)
        remote_command = "bash -c " + shlex.quote(env_prefix + command)
        try:
            call = asyncio.to_thread(self._exec, client, remote_command)
            if timeout:
                stdout_text, stderr_text = await asyncio.wait_for(call, timeout)
            else:
                stdout_text, stderr_text = await call
        except asyncio.TimeoutError:
            logger.error(f"[{host}] Command timed out after {timeout} seconds")
            return NodeResult.timeout(host)
        finally:
            # Closing the transport also ends a command still running remotely
            client.close()

        if stderr_text.strip():
            logger.warning(f"[{host}] stderr: {stderr_text.rstrip()}")

        return NodeResult(node=host, lines=split_lines(stdout_text))
