import logging
from typing import List, Optional

from cluster.executor.local_executor import run_process
from runner.result import NodeResult

logger = logging.getLogger(__name__)


class KubectlExecutor:
    """Runs commands inside pods through `kubectl exec`."""

    def __init__(self, kubectl: str = "kubectl", namespace: Optional[str] = None):
        self.kubectl = kubectl
        self.namespace = namespace

    def build_command(self, pod: str, command: str) -> List[str]:
        argv = [self.kubectl, "exec", pod]
        if self.namespace:
            argv.append(f"--namespace={self.namespace}")
        return argv + ["--", "bash", "-c", command]

    async def run(self, node, command: str, env_prefix: str = "", timeout: int = 0) -> NodeResult:
        argv = self.build_command(node.name, env_prefix + command)
        logger.debug(f"$ {' '.join(argv)}")
        return await run_process(argv, node.name, timeout)
