# parser/testcase_parser.py
import re
from typing import Any, Dict, List, Mapping, Optional

import yaml

from parser.dsl_models import (
    Assertion,
    DefinitionError,
    Expected,
    OutputBinding,
    Step,
    TestConfig,
    TestDefinition,
)

_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
_INTEGER = re.compile(r"[-+]?[0-9]+")

# Scalars keep their source text (yes, 010, 1.10, 0x1F); numeric fields are converted explicitly
_TYPED_TAGS = {
    "tag:yaml.org,2002:bool",
    "tag:yaml.org,2002:int",
    "tag:yaml.org,2002:float",
    "tag:yaml.org,2002:timestamp",
}


class _TextLoader(yaml.SafeLoader):
    yaml_implicit_resolvers = {
        first: [(tag, rx) for tag, rx in resolvers if tag not in _TYPED_TAGS]
        for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }


def render_template(text: str, params: Optional[Mapping[str, str]] = None) -> str:
    """Replace {{NAME}} placeholders with values from params."""
    params = params or {}
    missing = sorted({m.group(1) for m in _PLACEHOLDER.finditer(text) if m.group(1) not in params})
    if missing:
        raise DefinitionError(f"Missing template parameters: {', '.join(missing)}")
    return _PLACEHOLDER.sub(lambda m: str(params[m.group(1)]), text)


def _as_int(value: Any, field_name: str, minimum: int = 0) -> int:
    if isinstance(value, str) and _INTEGER.fullmatch(value.strip()):
        value = int(value)
    if not isinstance(value, int):
        raise DefinitionError(f"'{field_name}' must be an integer, got {value!r}")
    if value < minimum:
        raise DefinitionError(f"'{field_name}' must be >= {minimum}, got {value}")
    return value


def _as_seconds(value: Any, field_name: str) -> float:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise DefinitionError(f"'{field_name}' must be a number of seconds, got {value!r}") from None
    if seconds < 0:
        raise DefinitionError(f"'{field_name}' must be >= 0, got {value}")
    return int(seconds) if seconds.is_integer() else seconds


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise DefinitionError(f"expected a scalar value, got {value!r}")
    return value


def _as_path(value: Any, field_name: str) -> Optional[str]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise DefinitionError(f"'{field_name}' must be a file path, got {value!r}")
    return value


def _mapping(value: Any, what: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DefinitionError(f"{what} must be a mapping")
    return value


def _list(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise DefinitionError(f"{what} must be a list")
    return value


def _parse_config(raw: Dict[str, Any]) -> TestConfig:
    if "nodes" not in raw:
        raise DefinitionError("config.nodes is required")

    expected_raw = _mapping(raw.get("expected"), "config.expected")
    expected = Expected(
        successes=_as_int(expected_raw.get("successes", 0), "expected.successes"),
        failures=_as_int(expected_raw.get("failures", 0), "expected.failures"),
        timeouts=_as_int(expected_raw.get("timeouts", 0), "expected.timeouts"),
    )

    return TestConfig(
        nodes=_as_int(raw["nodes"], "config.nodes", minimum=1),
        selector=_as_str(raw.get("selector", "")),
        times=_as_int(raw.get("times", 1), "config.times"),
        grace_shutdown=_as_seconds(raw.get("grace_shutdown") or 0, "config.grace_shutdown"),
        expected=expected,
    )


def _parse_step(raw: Any, index: int, nodes: int) -> Step:
    if not isinstance(raw, dict):
        raise DefinitionError(f"steps[{index}] must be a mapping")

    name = _as_str(raw.get("name")) or f"step {index + 1}"
    where = f"step '{name}'"

    cmd = raw.get("cmd")
    if not isinstance(cmd, str) or not cmd.strip():
        raise DefinitionError(f"{where}: 'cmd' is required")
    if "on_node" not in raw:
        raise DefinitionError(f"{where}: 'on_node' is required")

    on_node = _as_int(raw["on_node"], f"{where}.on_node", minimum=1)
    end_node = _as_int(raw.get("end_node", 0) or 0, f"{where}.end_node")
    if end_node == 0:
        end_node = on_node
    if end_node < on_node:
        raise DefinitionError(f"{where}: end_node ({end_node}) is before on_node ({on_node})")
    if end_node > nodes:
        raise DefinitionError(f"{where}: node {end_node} is outside the configured {nodes} nodes")

    outputs = []
    for out in _list(raw.get("outputs"), f"{where}.outputs"):
        out = _mapping(out, f"{where}.outputs[]")
        save_to = out.get("save_to")
        if not isinstance(save_to, str) or not save_to:
            raise DefinitionError(f"{where}: every output needs 'save_to'")
        if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", save_to):
            raise DefinitionError(f"{where}: '{save_to}' is not a valid shell variable name")
        outputs.append(
            OutputBinding(
                line=_as_int(out.get("line", 0), f"{where}.outputs.line"),
                save_to=save_to,
                save_to_file=_as_path(out.get("save_to_file"), f"{where}.outputs.save_to_file"),
            )
        )

    assertions = []
    for assertion in _list(raw.get("assertions"), f"{where}.assertions"):
        assertion = _mapping(assertion, f"{where}.assertions[]")
        if "should_be_equal_to" not in assertion:
            raise DefinitionError(f"{where}: every assertion needs 'should_be_equal_to'")
        assertions.append(
            Assertion(
                line=_as_int(assertion.get("line", 0), f"{where}.assertions.line"),
                should_be_equal_to=_as_str(assertion["should_be_equal_to"]),
            )
        )

    return Step(
        name=name,
        on_node=on_node,
        end_node=end_node,
        cmd=cmd,
        timeout=_as_int(raw.get("timeout", 0) or 0, f"{where}.timeout"),
        inputs=tuple(_as_str(i) for i in _list(raw.get("inputs"), f"{where}.inputs")),
        outputs=tuple(outputs),
        assertions=tuple(assertions),
        write_to_file=_as_path(raw.get("write_to_file"), f"{where}.write_to_file"),
    )


def parse_testcase(text: str, params: Optional[Mapping[str, str]] = None) -> TestDefinition:
    try:
        raw = yaml.load(render_template(text, params), Loader=_TextLoader)
    except yaml.YAMLError as e:
        raise DefinitionError(f"Invalid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise DefinitionError("Invalid test definition: expected a mapping")

    config = _parse_config(_mapping(raw.get("config"), "config"))

    raw_steps = raw.get("steps")
    if not isinstance(raw_steps, list):
        raise DefinitionError('Invalid test definition: missing "steps" list')

    steps = [_parse_step(s, i, config.nodes) for i, s in enumerate(raw_steps)]

    # A variable bound by two declarations would resolve to whichever was bound first
    seen: Dict[str, str] = {}
    for step in steps:
        for out in step.outputs:
            if out.save_to in seen:
                raise DefinitionError(
                    f"Variable {out.save_to} is saved by both '{seen[out.save_to]}' and '{step.name}'"
                )
            seen[out.save_to] = step.name

    return TestDefinition(
        name=_as_str(raw.get("name") or "unnamed test"),
        config=config,
        steps=tuple(steps),
    )
