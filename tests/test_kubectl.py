import json
import os
from datetime import datetime

import pytest

from cluster.executor.kubectl_executor import KubectlExecutor
from cluster.node_pool import KubectlNodePool, NodeHandle, ProvisioningError


def pod(name, phase="Running"):
    return {"metadata": {"name": name}, "status": {"phase": phase}}


class FakeKubectl:
    """Replaces KubectlNodePool._kubectl; answers `get pods` from a list of snapshots."""

    def __init__(self, *snapshots):
        self.snapshots = list(snapshots)
        self.calls = []

    async def __call__(self, *args, namespaced=True):
        self.calls.append(args)
        if args[0] == "get" and args[1] == "pods":
            items = self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]
            return json.dumps({"items": items})
        return ""


def test_exec_command_line():
    executor = KubectlExecutor(namespace="ipfs")

    argv = executor.build_command("ipfs-0", 'HASH="x" && echo $HASH')

    assert argv == ["kubectl", "exec", "ipfs-0", "--namespace=ipfs", "--", "bash", "-c", 'HASH="x" && echo $HASH']


@pytest.mark.asyncio
async def test_exec_through_a_kubectl_binary(tmp_path):
    fake = tmp_path / "kubectl"
    # Drops everything up to `bash -c` and runs the command locally
    fake.write_text('#!/bin/bash\nwhile [ "$1" != "-c" ]; do shift; done\nexec bash "$@"\n')
    fake.chmod(0o755)

    result = await KubectlExecutor(kubectl=str(fake)).run(NodeHandle(1, "ipfs-0"), "echo $A", 'A="1" && ')

    assert result.lines == ["1"]


@pytest.mark.asyncio
async def test_ready_count_only_counts_running_pods():
    pool = KubectlNodePool("app=ipfs", "ipfs")
    pool._kubectl = FakeKubectl([pod("a"), pod("b", "Pending"), pod("c")])

    assert await pool.ready_count() == 2


@pytest.mark.asyncio
async def test_handles_are_sorted_and_indexed():
    pool = KubectlNodePool("app=ipfs", "ipfs")
    pool._kubectl = FakeKubectl([pod("ipfs-c"), pod("ipfs-a"), pod("ipfs-b", "Pending")])

    handles = await pool.list_handles()

    assert handles == (NodeHandle(1, "ipfs-a"), NodeHandle(2, "ipfs-c"))


@pytest.mark.asyncio
async def test_scale_polls_until_ready():
    pool = KubectlNodePool("app=ipfs", "go-ipfs-stress", poll_interval=0)
    fake = FakeKubectl([pod("a")], [pod("a"), pod("b", "Pending")], [pod("a"), pod("b"), pod("c")])
    pool._kubectl = fake

    await pool.scale_to(3)

    assert fake.calls[0] == ("scale", "--replicas=3", "deployment/go-ipfs-stress")
    assert sum(1 for c in fake.calls if c[:2] == ("get", "pods")) == 3


@pytest.mark.asyncio
async def test_kubectl_failure_is_a_provisioning_error(tmp_path):
    fake = tmp_path / "kubectl"
    fake.write_text("#!/bin/sh\necho 'connection refused' >&2\nexit 1\n")
    fake.chmod(0o755)
    pool = KubectlNodePool("app=ipfs", "ipfs", kubectl=str(fake))

    with pytest.raises(ProvisioningError, match="connection refused"):
        await pool.ready_count()


@pytest.mark.asyncio
async def test_missing_kubectl_is_a_provisioning_error(tmp_path):
    pool = KubectlNodePool("app=ipfs", "ipfs", kubectl=os.path.join(str(tmp_path), "kubectl"))

    with pytest.raises(ProvisioningError):
        await pool.list_handles()


@pytest.mark.asyncio
async def test_get_pods_passes_selector_and_namespace(tmp_path):
    log = tmp_path / "args"
    fake = tmp_path / "kubectl"
    fake.write_text(f'#!/bin/sh\necho "$@" > {log}\necho \'{{"items": []}}\'\n')
    fake.chmod(0o755)
    pool = KubectlNodePool("app=ipfs", "ipfs", kubectl=str(fake), namespace="test")

    assert await pool.get_pods() == []
    assert log.read_text().split() == ["get", "pods", "--output=json", "--selector=app=ipfs", "--namespace=test"]


@pytest.mark.asyncio
async def test_metrics_link():
    pool = KubectlNodePool("app=ipfs", "ipfs")

    async def kubectl(*args, namespaced=True):
        return "30002" if args[1] == "service" else "192.168.99.100"

    pool._kubectl = kubectl
    start = datetime.fromtimestamp(1000)
    end = datetime.fromtimestamp(2000)

    link = await pool.metrics_link(start, end)

    assert link == "http://192.168.99.100:30002/dashboard/db/kubernetes-pod-resources?from=1000000&to=2000000"


@pytest.mark.asyncio
async def test_metrics_link_is_optional():
    pool = KubectlNodePool("app=ipfs", "ipfs")

    async def kubectl(*args, namespaced=True):
        raise ProvisioningError("no grafana")

    pool._kubectl = kubectl

    assert await pool.metrics_link(datetime.now(), datetime.now()) is None
