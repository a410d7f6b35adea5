#!/usr/bin/env python3
"""
Ansible module: erlang_rpc
Description: Call module:function on a running Erlang node and report the result
Usage:
  erlang-rpc <args-file>                       (Ansible old-style invocation)
  erlang-rpc args node=N module=M function=F [args=A] [timeout=T] [cookie=C]
"""

import logging
import sys
from typing import Optional

from ansible_erlang_rpc import dispatcher
from ansible_erlang_rpc.arguments import build_config, read_params
from ansible_erlang_rpc.config import load_settings
from ansible_erlang_rpc.errors import ErlangRpcError
from ansible_erlang_rpc.utils import failure_envelope, success_envelope

logger = logging.getLogger(__name__)


def configure_logging(level: int) -> None:
    # stdout is reserved for the JSON envelope
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _emit(line: str, code: int) -> int:
    print(line, flush=True)
    return code


def main(argv: Optional[list[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    try:
        settings = load_settings()
        configure_logging(settings.log_level)

        params = read_params(argv)
        config = build_config(params, default_timeout=settings.default_timeout)
        result = dispatcher.call(config, settings)
    except ErlangRpcError as e:
        logger.error(f"Call failed: {e}")
        return _emit(failure_envelope(str(e)), 1)
    except Exception as e:
        logger.error(f"Fatal error: {str(e)}", exc_info=True)
        return _emit(failure_envelope(f"{type(e).__name__}: {e}"), 1)

    return _emit(success_envelope(result), 0)


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
