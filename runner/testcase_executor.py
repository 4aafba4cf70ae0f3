# runner/testcase_executor.py
import asyncio
import logging
from typing import List, Sequence

from cluster.node_pool import NodeHandle, ProvisioningError
from parser.dsl_models import Step
from runner.environment import Environment, resolve_assertion_target
from runner.result import NodeResult, Summary

logger = logging.getLogger(__name__)


def _append(path: str, text: str) -> None:
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(text + "\n")
    except OSError as e:
        logger.error(f"Failed to open output file: {e}")


class StepExecutor:
    """
    Runs one step on its node range in parallel and folds the results into
    the shared Summary. All Summary/Environment mutation happens in execute(),
    never inside the per-node tasks.
    """

    def __init__(self, remote_exec, summary: Summary, max_parallel: int = 0):
        self.remote_exec = remote_exec
        self.summary = summary
        self._limit = asyncio.Semaphore(max_parallel) if max_parallel else None

    async def _dispatch(self, node: NodeHandle, step: Step, env_prefix: str) -> NodeResult:
        if self._limit is None:
            return await self.remote_exec.run(node, step.cmd, env_prefix, step.timeout)
        async with self._limit:
            return await self.remote_exec.run(node, step.cmd, env_prefix, step.timeout)

    def _targets(self, step: Step, nodes: Sequence[NodeHandle]) -> List[NodeHandle]:
        if step.last_node > len(nodes):
            raise ProvisioningError(
                f"Step '{step.name}' needs node {step.last_node} but only {len(nodes)} are available"
            )
        return list(nodes[step.on_node - 1:step.last_node])

    async def execute(self, step: Step, nodes: Sequence[NodeHandle], env: Environment) -> Environment:
        logger.info(f"### Running step {step.name} on nodes {step.on_node} to {step.last_node}")
        for name in step.inputs:
            logger.info(f"### Getting variable {name}")
        logger.info(f"$ {step.cmd}")

        targets = self._targets(step, nodes)
        logger.info(f"Running parallel on {step.num_nodes} nodes.")

        env_prefix = env.as_shell_prefix()
        step_env = env.copy()

        tasks = [asyncio.ensure_future(self._dispatch(node, step, env_prefix)) for node in targets]
        try:
            for next_result in asyncio.as_completed(tasks):
                result = await next_result
                self.handle_result(step, result, env, step_env)
        finally:
            for task in tasks:
                task.cancel()

        return step_env

    def handle_result(self, step: Step, result: NodeResult, base_env: Environment, step_env: Environment) -> None:
        """
        Apply one node's result: timeout accounting, raw output file, output
        bindings, then assertions. Assertions see base_env plus bindings from
        this result only.
        """
        if result.timed_out:
            self.summary.timeouts += 1
            return

        lines = result.lines

        if step.write_to_file:
            _append(step.write_to_file, "\n".join(lines))

        local_env = base_env.copy()
        for output in step.outputs:
            if output.line >= len(lines):
                logger.error(f"[{result.node}] Not enough lines in output for line {output.line}. Skipping")
                break
            value = lines[output.line]
            logger.info(f"### Saving output from line {output.line} to variable {output.save_to}: {value}")
            local_env.bind(output.save_to, value)
            step_env.bind(output.save_to, value)
            if output.save_to_file:
                _append(output.save_to_file, value)

        for assertion in step.assertions:
            if assertion.line >= len(lines):
                logger.error(f"[{result.node}] Not enough lines in output. Skipping assertions")
                break
            actual = lines[assertion.line]
            expected = resolve_assertion_target(assertion.should_be_equal_to, local_env)
            if actual == expected:
                self.summary.successes += 1
                logger.info(f"[{result.node}] Assertion Passed")
            else:
                self.summary.failures += 1
                logger.error(
                    f"[{result.node}] Assertion failed!\n"
                    f"Actual value={actual}\n"
                    f"Expected value={expected}\n"
                )
