from ansible_erlang_rpc.module import run

run()
