from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class TestStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"


@dataclass(frozen=True)
class NodeResult:
    """Outcome of one command on one node. A timed-out result carries no lines."""
    node: str
    lines: List[str] = field(default_factory=list)
    timed_out: bool = False

    @classmethod
    def timeout(cls, node: str) -> "NodeResult":
        return cls(node=node, lines=[], timed_out=True)


@dataclass
class Summary:
    tests_to_run: int = 0
    tests_ran: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    start: Optional[datetime] = None
    end: Optional[datetime] = None
