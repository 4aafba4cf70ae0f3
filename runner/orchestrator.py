import asyncio
import logging
import pprint
from datetime import datetime

from cluster.node_pool import ProvisioningError
from config.config import Settings
from parser.dsl_models import TestConfig, TestDefinition
from runner.environment import Environment
from runner.outcome import evaluate_outcome, exit_code, print_summary
from runner.result import Summary
from runner.testcase_executor import StepExecutor

logger = logging.getLogger(__name__)


class TestOrchestrator:

    def __init__(self, node_pool, remote_exec, settings: Settings = None, sleep=asyncio.sleep):
        """
        node_pool   → KubectlNodePool / StaticNodePool
        remote_exec → KubectlExecutor / SSHExecutor / LocalExecutor
        sleep       → awaited for the grace period
        """
        self.node_pool = node_pool
        self.remote_exec = remote_exec
        self.settings = settings or Settings()
        self.sleep = sleep
        self.summary = Summary()

    async def ensure_nodes(self, config: TestConfig) -> None:
        # Pods may still be starting from an earlier, interrupted scale-up
        running = await self.node_pool.ready_count()
        if config.nodes > running:
            print("Not enough nodes running. Scaling up...")
            await self.node_pool.scale_to(config.nodes)

    async def run_repetition(self, definition: TestDefinition, executor: StepExecutor) -> Environment:
        nodes = await self.node_pool.list_handles()
        if len(nodes) < definition.config.nodes:
            raise ProvisioningError(
                f"Only {len(nodes)} nodes available, test needs {definition.config.nodes}"
            )
        logger.info(f"## Using {definition.config.nodes} nodes for this test")

        env = Environment()
        for step in definition.steps:
            env = await executor.execute(step, nodes, env)
        return env

    async def run(self, definition: TestDefinition) -> int:
        config = definition.config
        if self.settings.debug:
            logger.debug(f"Configuration:\n{pprint.pformat(definition)}")

        self.summary = Summary(tests_to_run=config.times, start=datetime.now())
        executor = StepExecutor(self.remote_exec, self.summary, self.settings.max_parallel)

        await self.ensure_nodes(config)

        for i in range(config.times):
            logger.info(f"## Running test '{definition.name}' ({i + 1}/{config.times})")
            await self.run_repetition(definition, executor)
            self.summary.tests_ran += 1

        logger.info(f"Now waiting for {config.grace_shutdown} seconds before shutdown...")
        await self.sleep(config.grace_shutdown)
        self.summary.end = datetime.now()

        print_summary(self.summary, await self.node_pool.metrics_link(self.summary.start, self.summary.end))
        return exit_code(evaluate_outcome(self.summary, config.expected))
