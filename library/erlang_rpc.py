#!/usr/bin/env python3
# Ansible module shim: lets playbooks use `local_action: erlang_rpc ...`
# with the ansible_erlang_rpc package installed in the controller's interpreter.

DOCUMENTATION = """
---
module: erlang_rpc
short_description: Call a function on a running Erlang node.
description:
  - Starts a hidden, ephemeral Erlang node, joins the target's cluster and
    performs one rpc:call with a timeout.
  - Intended for local_action; requires erl on the controller.
options:
  node:
    description: Target node name, e.g. app@host.
    required: true
  module:
    description: Erlang module to call.
    required: true
  function:
    description: Function to call.
    required: true
  args:
    description: Comma-separated Erlang literals passed as the argument list.
    required: false
  timeout:
    description: Call timeout in milliseconds, or infinity.
    default: 5000
  cookie:
    description: Shared cookie of the target cluster.
    required: false
"""

EXAMPLES = """
- local_action: erlang_rpc node=app@db1 module=erlang function=node
- local_action: erlang_rpc node=app@db1 module=application function=which_applications timeout=infinity
- local_action: erlang_rpc node=app@db1 module=lists function=seq args=1,10 cookie=secret
"""

from ansible_erlang_rpc.module import run

if __name__ == "__main__":
    run()
