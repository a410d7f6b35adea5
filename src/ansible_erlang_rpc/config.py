import logging
import os
from dataclasses import dataclass
from typing import Optional

from ansible_erlang_rpc.errors import ConfigError
from ansible_erlang_rpc.models import DEFAULT_TIMEOUT

# =========================
# Settings
# =========================

DEFAULT_ERL = "erl"
DEFAULT_NAME_PREFIX = "ansible_rpc"
DEFAULT_STARTUP_GRACE = 10.0
DEFAULT_LOG_LEVEL = "WARNING"


@dataclass(frozen=True)
class Settings:
    erl_path: str = DEFAULT_ERL
    name_prefix: str = DEFAULT_NAME_PREFIX
    # Seconds allowed on top of the rpc timeout for node start-up and connection
    startup_grace: float = DEFAULT_STARTUP_GRACE
    default_timeout: int = DEFAULT_TIMEOUT
    log_level: int = logging.WARNING


def _log_level(name: Optional[str]) -> int:
    level = logging.getLevelName((name or DEFAULT_LOG_LEVEL).strip().upper())
    return level if isinstance(level, int) else logging.WARNING


def load_settings(environ: Optional[dict] = None) -> Settings:
    """
    Load runtime settings from the environment:
    - ERLANG_RPC_ERL: path of the erl executable
    - ERLANG_RPC_NAME_PREFIX: prefix of the ephemeral node name
    - ERLANG_RPC_STARTUP_GRACE: extra seconds granted to erl beyond the rpc timeout
    - ERLANG_RPC_LOG_LEVEL: stderr log level
    """
    env = os.environ if environ is None else environ

    raw_grace = (env.get("ERLANG_RPC_STARTUP_GRACE") or "").strip()
    try:
        grace = float(raw_grace) if raw_grace else DEFAULT_STARTUP_GRACE
    except ValueError:
        raise ConfigError(
            f"ERLANG_RPC_STARTUP_GRACE must be a number of seconds, got {raw_grace!r}"
        ) from None
    if grace < 0:
        raise ConfigError("ERLANG_RPC_STARTUP_GRACE must not be negative")

    return Settings(
        erl_path=(env.get("ERLANG_RPC_ERL") or "").strip() or DEFAULT_ERL,
        name_prefix=(env.get("ERLANG_RPC_NAME_PREFIX") or "").strip()
        or DEFAULT_NAME_PREFIX,
        startup_grace=grace,
        log_level=_log_level(env.get("ERLANG_RPC_LOG_LEVEL")),
    )
