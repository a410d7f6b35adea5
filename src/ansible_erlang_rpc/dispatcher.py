import logging
import os
import re
import subprocess
from typing import Optional

from ansible_erlang_rpc.config import Settings
from ansible_erlang_rpc.errors import CallTimeoutError, RemoteCallError
from ansible_erlang_rpc.models import INFINITY, InvocationConfig, Session
from ansible_erlang_rpc.terms import Atom, to_erlang
from ansible_erlang_rpc.utils import get_sanitized_env

logger = logging.getLogger(__name__)

COOKIE_ENV = "ERLANG_RPC_COOKIE"

MARKER_PREFIX = "@@erlang_rpc:"
OK, BADRPC, ERROR = "ok", "badrpc", "error"

_MARKER_RE = re.compile(
    r"^" + re.escape(MARKER_PREFIX) + r"(ok|badrpc|error)[ \t]*$", re.MULTILINE
)

# {badrpc, timeout} as printed by ~tp
_RPC_TIMEOUT = "{badrpc,timeout}"


# =========================
# Session
# =========================


def new_session(config: InvocationConfig, prefix: str = "ansible_rpc") -> Session:
    """
    Ephemeral node identity for this process.
    The OS pid keeps concurrent invocations on one host from colliding.
    """
    return Session(
        name=f"{prefix}_{os.getpid()}",
        longnames="." in config.host,
        cookie=config.cookie,
    )


# =========================
# Command line
# =========================


def _report(tag: str, var: str) -> str:
    return f'io:format("~s~n~tp~n", ["{MARKER_PREFIX}{tag}", {var}])'


def build_eval(config: InvocationConfig, session: Session) -> str:
    """Erlang expression run by the ephemeral node: one rpc:call, one report, halt."""
    call_args = [
        to_erlang(Atom(config.node)),
        to_erlang(Atom(config.module)),
        to_erlang(Atom(config.function)),
        to_erlang(list(config.args)),
        to_erlang(config.timeout),
    ]

    steps = []
    if session.cookie:
        steps.append(
            f'erlang:set_cookie(node(), list_to_atom(os:getenv("{COOKIE_ENV}")))'
        )
    steps.append(
        f"case rpc:call({','.join(call_args)}) of "
        f"{{badrpc, _}} = R -> {_report(BADRPC, 'R')}, halt(1); "
        f"R -> {_report(OK, 'R')}, halt(0) "
        f"end"
    )

    return (
        "try "
        + ", ".join(steps)
        + f" catch C:E -> {_report(ERROR, '{C, E}')}, halt(1) end."
    )


def build_command(
    config: InvocationConfig, session: Session, erl_path: str = "erl"
) -> list[str]:
    return [
        erl_path,
        "-noinput",
        "-hidden",
        "-name" if session.longnames else "-sname",
        session.name,
        "-eval",
        build_eval(config, session),
        # Backstop in case the expression never reaches halt/1
        "-s",
        "erlang",
        "halt",
    ]


def build_env(session: Session, base: Optional[dict] = None) -> dict:
    env = dict(os.environ if base is None else base)
    env.pop(COOKIE_ENV, None)
    if session.cookie:
        env[COOKIE_ENV] = session.cookie
    return env


def env_overrides(env: dict, base: Optional[dict] = None) -> dict:
    """Entries of env that differ from base (os.environ by default).
    Keys missing from env are reported as '<unset>'.
    """
    base = os.environ if base is None else base
    changed = {k: v for k, v in env.items() if base.get(k) != v}
    changed.update({k: "<unset>" for k in base if k not in env})
    return changed


def wall_clock_limit(config: InvocationConfig, startup_grace: float) -> Optional[float]:
    """Seconds erl may run in total; None means unbounded."""
    if config.timeout == INFINITY:
        return None
    return config.timeout / 1000 + startup_grace


# =========================
# Outcome
# =========================


def parse_output(stdout: str, stderr: str, returncode: int) -> str:
    """Return the formatted result of a successful call or raise the classified error."""
    matches = list(_MARKER_RE.finditer(stdout or ""))
    if not matches:
        details = (stderr or "").strip() or (stdout or "").strip() or "no output"
        raise RemoteCallError(f"erl exited with status {returncode}: {details}")

    last = matches[-1]
    tag = last.group(1)
    payload = stdout[last.end() :].strip()

    if tag == OK:
        return payload
    if payload == _RPC_TIMEOUT:
        raise CallTimeoutError(payload)
    raise RemoteCallError(payload)


# =========================
# Call
# =========================


def call(config: InvocationConfig, settings: Optional[Settings] = None) -> str:
    """
    Perform exactly one rpc:call against config.node.
    Returns the ~tp rendering of the result; raises RemoteCallError/CallTimeoutError.
    """
    settings = settings or Settings()
    session = new_session(config, settings.name_prefix)
    cmd = build_command(config, session, settings.erl_path)
    env = build_env(session)
    limit = wall_clock_limit(config, settings.startup_grace)

    logger.info(
        "Calling %s:%s/%d on %s as %s (timeout=%s)",
        config.module,
        config.function,
        len(config.args),
        config.node,
        session.name,
        config.timeout,
    )
    logger.debug("Running erl: %s", cmd)
    logger.debug(
        "erl environment overrides: %s",
        get_sanitized_env(env_overrides(env)),
    )

    try:
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            close_fds=True,
            env=env,
        )
    except OSError as e:
        raise RemoteCallError(f"cannot start {settings.erl_path}: {e}") from e

    try:
        stdout, stderr = proc.communicate(timeout=limit)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()
        logger.warning("erl killed after %.1fs without a reply", limit)
        raise CallTimeoutError(
            f"timeout: no reply from {config.node} within {config.timeout} ms"
        ) from None

    logger.debug("erl returncode=%s stderr=%s", proc.returncode, (stderr or "").strip())
    return parse_output(stdout, stderr, proc.returncode)
