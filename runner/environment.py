import logging
from typing import Iterable, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


def _shell_escape(value: str) -> str:
    # Escapes for use inside double quotes
    for ch in ("\\", '"', "$", "`"):
        value = value.replace(ch, "\\" + ch)
    return value


class Environment:
    """
    Ordered, append-only list of name=value bindings captured by earlier steps.
    A fresh Environment is used for every repetition of a test.
    """

    def __init__(self, bindings: Optional[Iterable[Tuple[str, str]]] = None):
        self._bindings: List[Tuple[str, str]] = list(bindings or [])

    def bind(self, name: str, value: str) -> None:
        if self.lookup(name) is not None:
            logger.debug(f"Variable {name} already bound, earlier value is kept for assertions")
        self._bindings.append((name, value))

    def lookup(self, name: str) -> Optional[str]:
        """First non-empty value bound to name, or None."""
        for bound_name, value in self._bindings:
            if bound_name == name and value != "":
                return value
        return None

    def copy(self) -> "Environment":
        return Environment(self._bindings)

    def as_shell_prefix(self) -> str:
        """Render bindings as `NAME="value" ... && ` so commands can read them."""
        if not self._bindings:
            return ""
        assignments = " ".join(f'{name}="{_shell_escape(value)}"' for name, value in self._bindings)
        return assignments + " && "

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __repr__(self) -> str:
        return f"Environment({self._bindings!r})"


def resolve_assertion_target(target: str, env: Environment) -> str:
    """
    Return the literal a captured line must equal. If target names a bound
    variable with a non-empty value, that value is used; otherwise target is
    itself the expected literal.
    """
    value = env.lookup(target)
    return target if value is None else value
