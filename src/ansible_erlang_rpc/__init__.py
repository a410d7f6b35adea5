from ansible_erlang_rpc.models import INFINITY, InvocationConfig
from ansible_erlang_rpc.terms import Atom

__all__ = ["Atom", "INFINITY", "InvocationConfig"]
