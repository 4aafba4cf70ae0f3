import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class ProvisioningError(RuntimeError):
    """The node pool could not be listed or brought to the required size."""


@dataclass(frozen=True)
class NodeHandle:
    index: int      # 1-based, matches on_node / end_node
    name: str


def _handles(names: Sequence[str]) -> Tuple[NodeHandle, ...]:
    return tuple(NodeHandle(index=i, name=name) for i, name in enumerate(names, start=1))


class StaticNodePool:
    """A fixed list of hosts (SSH or local runs). It cannot be scaled."""

    def __init__(self, hosts: Sequence[str]):
        self.hosts = list(hosts)

    async def ready_count(self) -> int:
        return len(self.hosts)

    async def scale_to(self, target: int) -> None:
        if target > len(self.hosts):
            raise ProvisioningError(
                f"Test needs {target} nodes but only {len(self.hosts)} hosts are configured"
            )

    async def list_handles(self) -> Tuple[NodeHandle, ...]:
        return _handles(self.hosts)

    async def metrics_link(self, start: datetime, end: datetime) -> Optional[str]:
        return None


class KubectlNodePool:
    """Pods of a deployment, selected by label, managed through kubectl."""

    def __init__(
        self,
        selector: str,
        deployment: str,
        kubectl: str = "kubectl",
        namespace: Optional[str] = None,
        poll_interval: float = 3,
    ):
        self.selector = selector
        self.deployment = deployment
        self.kubectl = kubectl
        self.namespace = namespace
        self.poll_interval = poll_interval

    async def _kubectl(self, *args: str, namespaced: bool = True) -> str:
        argv = [self.kubectl, *args]
        if namespaced and self.namespace:
            argv.append(f"--namespace={self.namespace}")
        logger.debug(f"$ {' '.join(argv)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProvisioningError(f"Cannot run {self.kubectl}: {e}") from e

        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise ProvisioningError(
                f"{' '.join(args[:2])} failed ({proc.returncode}): {stderr.decode(errors='replace').strip()}"
            )
        return stdout.decode(errors="replace")

    async def get_pods(self) -> List[dict]:
        args = ["get", "pods", "--output=json"]
        if self.selector:
            args.append(f"--selector={self.selector}")
        out = await self._kubectl(*args)
        try:
            return json.loads(out).get("items", [])
        except json.JSONDecodeError as e:
            raise ProvisioningError(f"Unexpected kubectl output: {e}") from e

    async def _running_pod_names(self) -> List[str]:
        pods = await self.get_pods()
        return sorted(
            pod["metadata"]["name"]
            for pod in pods
            if pod.get("status", {}).get("phase") == "Running"
        )

    async def ready_count(self) -> int:
        return len(await self._running_pod_names())

    async def scale_to(self, target: int) -> None:
        """Scale the deployment and block until enough pods are running."""
        print("Scaling in progress...")
        await self._kubectl("scale", f"--replicas={target}", f"deployment/{self.deployment}")

        running = await self.ready_count()
        while running < target:
            print(f"\tContainers running (current/target): ({running}/{target})")
            await asyncio.sleep(self.poll_interval)
            running = await self.ready_count()
        print("Scale complete")

    async def list_handles(self) -> Tuple[NodeHandle, ...]:
        return _handles(await self._running_pod_names())

    async def metrics_link(self, start: datetime, end: datetime) -> Optional[str]:
        """Grafana dashboard covering the run window, when the service can be found."""
        try:
            port = await self._kubectl(
                "get", "service", "grafana", "--namespace=monitoring",
                "-o", "jsonpath={.spec.ports[0].nodePort}",
                namespaced=False,
            )
            address = await self._kubectl(
                "get", "nodes",
                "-o", 'jsonpath={.items[0].status.addresses[?(@.type == "InternalIP")].address}',
                namespaced=False,
            )
        except ProvisioningError as e:
            logger.debug(f"No metrics link: {e}")
            return None

        port, address = port.strip(), address.strip()
        if not port or not address:
            return None
        return (
            f"http://{address}:{port}/dashboard/db/kubernetes-pod-resources"
            f"?from={int(start.timestamp() * 1000)}&to={int(end.timestamp() * 1000)}"
        )
