"""Shared doubles for the step engine tests."""
import asyncio

import pytest

from cluster.node_pool import NodeHandle, StaticNodePool
from runner.result import NodeResult, Summary

TIMEOUT = object()


class ScriptedExecutor:
    """
    Stand-in for a RemoteExec transport. `outputs` maps node name to the
    lines it prints, to TIMEOUT, or to a callable(command, env_prefix).
    """

    def __init__(self, outputs=None, default=(), delays=None):
        self.outputs = outputs or {}
        self.default = default
        self.delays = delays or {}
        self.calls = []
        self.running = 0
        self.max_running = 0

    async def run(self, node, command, env_prefix="", timeout=0):
        self.calls.append((node.name, command, env_prefix, timeout))
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(self.delays.get(node.name, 0))
        finally:
            self.running -= 1

        out = self.outputs.get(node.name, self.default)
        if callable(out):
            out = out(command, env_prefix)
        if out is TIMEOUT:
            return NodeResult.timeout(node.name)
        return NodeResult(node=node.name, lines=list(out))


class RecordingPool(StaticNodePool):
    def __init__(self, hosts, ready=None):
        super().__init__(hosts)
        self.ready = len(hosts) if ready is None else ready
        self.scaled_to = []
        self.list_calls = 0

    async def ready_count(self):
        return self.ready

    async def scale_to(self, target):
        await super().scale_to(target)
        self.scaled_to.append(target)
        self.ready = target

    async def list_handles(self):
        self.list_calls += 1
        return await super().list_handles()


def make_nodes(count):
    return tuple(NodeHandle(index=i, name=f"node-{i}") for i in range(1, count + 1))


@pytest.fixture
def nodes():
    return make_nodes(5)


@pytest.fixture
def summary():
    return Summary()
