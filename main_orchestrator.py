import argparse
import asyncio
import logging
import sys

import paramiko

from cluster.executor.command_router import CommandRouter
from cluster.node_pool import ProvisioningError
from config.config import TRANSPORTS, load_settings
from parser.dsl_models import DefinitionError
from parser.testcase_loader import TestCaseLoader
from runner.orchestrator import TestOrchestrator


def _param(value: str):
    key, sep, val = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got '{value}'")
    return key, val


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Run a multi-node test definition against a cluster"
    )
    parser.add_argument("testfile", help="YAML test definition (path or name under --testcase-dir)")
    parser.add_argument("--testcase-dir", default="./testcase")
    parser.add_argument(
        "--param", type=_param, action="append", default=[], metavar="KEY=VALUE",
        help="substitute {{KEY}} in the test definition",
    )
    parser.add_argument("--transport", choices=TRANSPORTS, default=None)
    parser.add_argument("--deployment", default=None, help="deployment scaled by the kubectl pool")
    parser.add_argument("--debug", action="store_true", default=None)
    return parser.parse_args(argv)


async def run(args, settings) -> int:
    definition = TestCaseLoader(args.testcase_dir).load(args.testfile, dict(args.param))

    router = CommandRouter(settings)
    orchestrator = TestOrchestrator(
        router.node_pool(definition.config),
        router.executor(),
        settings,
    )
    return await orchestrator.run(definition)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings(
            debug=args.debug,
            transport=args.transport,
            deployment_name=args.deployment,
        )
    except ValueError as e:
        print(e, file=sys.stderr)
        return 1

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(message)s",
    )
    logging.getLogger("paramiko").setLevel(logging.WARNING)

    try:
        return asyncio.run(run(args, settings))
    except (DefinitionError, ProvisioningError, paramiko.SSHException, OSError) as e:
        # OSError covers a missing definition file as well as refused or unreachable nodes
        print(e, file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
