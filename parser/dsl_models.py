# parser/dsl_models.py
from dataclasses import dataclass, field
from typing import Optional, Tuple


class DefinitionError(ValueError):
    """Raised when a test definition cannot be loaded or is inconsistent."""


@dataclass(frozen=True)
class OutputBinding:
    line: int
    save_to: str
    save_to_file: Optional[str] = None


@dataclass(frozen=True)
class Assertion:
    line: int
    should_be_equal_to: str


@dataclass(frozen=True)
class Step:
    name: str
    on_node: int
    cmd: str
    end_node: int = 0          # 0 means "same as on_node"
    timeout: int = 0           # seconds, 0 means no timeout
    inputs: Tuple[str, ...] = ()
    outputs: Tuple[OutputBinding, ...] = ()
    assertions: Tuple[Assertion, ...] = ()
    write_to_file: Optional[str] = None

    @property
    def last_node(self) -> int:
        return self.end_node or self.on_node

    @property
    def num_nodes(self) -> int:
        return self.last_node - self.on_node + 1


@dataclass(frozen=True)
class Expected:
    successes: int = 0
    failures: int = 0
    timeouts: int = 0


@dataclass(frozen=True)
class TestConfig:
    nodes: int
    selector: str = ""
    times: int = 1
    grace_shutdown: float = 0
    expected: Expected = field(default_factory=Expected)


@dataclass(frozen=True)
class TestDefinition:
    name: str
    config: TestConfig
    steps: Tuple[Step, ...] = ()
