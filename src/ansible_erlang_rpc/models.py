from dataclasses import dataclass
from typing import Any, Optional, Union

from ansible_erlang_rpc.terms import Atom

DEFAULT_TIMEOUT = 5000
INFINITY = Atom("infinity")


# =========================
# Invocation Model
# =========================
@dataclass(frozen=True)
class InvocationConfig:
    node: str
    module: str
    function: str
    args: tuple[Any, ...] = ()
    timeout: Union[int, Atom] = DEFAULT_TIMEOUT
    cookie: Optional[str] = None

    def __post_init__(self):
        for field in ("node", "module", "function"):
            value = getattr(self, field)
            if not value or not isinstance(value, str):
                raise ValueError(f"InvocationConfig {field} must be a non-empty str")

        if self.timeout != INFINITY and (
            isinstance(self.timeout, bool)
            or not isinstance(self.timeout, int)
            or self.timeout < 0
        ):
            raise ValueError(
                "InvocationConfig timeout must be a non-negative int or INFINITY"
            )

        # Lists from callers are frozen so the config stays immutable
        object.__setattr__(self, "args", tuple(self.args))

    @property
    def host(self) -> str:
        """Host part of the target node name ('' when the name has no '@')."""
        return self.node.partition("@")[2]


# =========================
# Session Model
# =========================
@dataclass(frozen=True)
class Session:
    """Identity of the ephemeral local node for one invocation."""

    name: str
    longnames: bool = False
    cookie: Optional[str] = None
