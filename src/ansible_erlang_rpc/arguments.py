import argparse
import json
import logging
import shlex
from typing import Union

from ansible_erlang_rpc.errors import ConfigError, MissingArgumentsError
from ansible_erlang_rpc.models import DEFAULT_TIMEOUT, INFINITY, InvocationConfig
from ansible_erlang_rpc.terms import Atom, parse_terms

logger = logging.getLogger(__name__)

# Marker selecting the direct form: <prog> args k=v k=v ...
DIRECT_FORM = "args"

REQUIRED_KEYS = ("node", "module", "function")
RECOGNIZED_KEYS = REQUIRED_KEYS + ("args", "timeout", "cookie")


class _ArgumentParser(argparse.ArgumentParser):
    # Errors must end up in the JSON envelope, not in argparse's usage/exit(2)
    def error(self, message):
        raise ConfigError(message)


def _build_parser() -> _ArgumentParser:
    parser = _ArgumentParser(
        prog="erlang-rpc",
        description="Call module:function on a running Erlang node (Ansible module)",
        add_help=False,
    )
    parser.add_argument(
        "source",
        nargs="?",
        help=f"path of an Ansible arguments file, or '{DIRECT_FORM}'",
    )
    parser.add_argument(
        "tokens",
        nargs=argparse.REMAINDER,
        help="key=value tokens (direct form only)",
    )
    return parser


def read_args_file(path: str) -> dict[str, str]:
    """
    Read an Ansible arguments file.
    Old-style files hold shell-quoted key=value tokens; a JSON object is also accepted.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(f"cannot read arguments file {path}: {e}") from e

    if content.lstrip().startswith("{"):
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigError(f"arguments file {path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"arguments file {path} must hold a JSON object")
        if not data:
            raise MissingArgumentsError("missing arguments")
        return _from_json(data)

    try:
        tokens = shlex.split(content)
    except ValueError as e:
        raise ConfigError(f"cannot tokenize arguments file {path}: {e}") from e
    if not tokens:
        raise MissingArgumentsError("missing arguments")
    return parse_tokens(tokens)


def _from_json(data: dict) -> dict[str, str]:
    params = {}
    for key, value in data.items():
        if key not in RECOGNIZED_KEYS or value is None:
            logger.debug("Ignoring argument %s", key)
            continue
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise ConfigError(f"argument {key} must be a string or an integer")
        params[key] = str(value)
    return params


def parse_tokens(tokens: list[str]) -> dict[str, str]:
    """Collect recognized key=value tokens; anything else is dropped."""
    params = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if not sep:
            logger.debug("Ignoring token without '=': %r", token)
            continue
        if key not in RECOGNIZED_KEYS:
            logger.debug("Ignoring argument %s", key)
            continue
        params[key] = value
    return params


def read_params(argv: list[str]) -> dict[str, str]:
    """Resolve both invocation forms to the same key/value mapping."""
    ns = _build_parser().parse_args(argv)
    if not ns.source:
        raise MissingArgumentsError("missing arguments")

    if ns.source == DIRECT_FORM:
        if not ns.tokens:
            raise MissingArgumentsError("missing arguments")
        return parse_tokens(ns.tokens)

    if ns.tokens:
        logger.debug("Ignoring extra tokens after arguments file: %s", ns.tokens)
    return read_args_file(ns.source)


def parse_timeout(text: str) -> Union[int, Atom]:
    value = (text or "").strip()
    if value == "infinity":
        return INFINITY
    if not (value.isascii() and value.isdigit()):
        raise ConfigError(
            f"timeout must be a non-negative integer or 'infinity', got {text!r}"
        )
    return int(value)


def build_config(
    params: dict[str, str], default_timeout: int = DEFAULT_TIMEOUT
) -> InvocationConfig:
    missing = [k for k in REQUIRED_KEYS if not params.get(k)]
    if missing:
        raise ConfigError(f"missing required arguments: {', '.join(missing)}")

    timeout = (
        parse_timeout(params["timeout"]) if "timeout" in params else default_timeout
    )

    return InvocationConfig(
        node=params["node"],
        module=params["module"],
        function=params["function"],
        args=tuple(parse_terms(params.get("args", ""))),
        timeout=timeout,
        cookie=params.get("cookie") or None,
    )
