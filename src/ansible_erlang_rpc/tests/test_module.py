# python
import json
from unittest.mock import patch

import pytest

from ansible_erlang_rpc import module
from ansible_erlang_rpc.errors import CallTimeoutError, RemoteCallError
from ansible_erlang_rpc.models import INFINITY


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in (
        "ERLANG_RPC_ERL",
        "ERLANG_RPC_NAME_PREFIX",
        "ERLANG_RPC_STARTUP_GRACE",
        "ERLANG_RPC_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


def run_main(capsys, argv):
    code = module.main(argv)
    out = capsys.readouterr().out
    return code, out


def test_no_arguments_fails(capsys):
    with patch.object(module.dispatcher, "call") as call:
        code, out = run_main(capsys, [])

    assert code == 1
    assert json.loads(out) == {"failed": True, "msg": "missing arguments"}
    call.assert_not_called()


def test_args_without_tokens_fails(capsys):
    code, out = run_main(capsys, ["args"])

    assert code == 1
    assert json.loads(out) == {"failed": True, "msg": "missing arguments"}


@pytest.mark.parametrize("absent", ["node", "module", "function"])
def test_missing_required_key_fails(capsys, absent):
    params = {"node": "app@db1", "module": "erlang", "function": "node"}
    del params[absent]
    argv = ["args"] + [f"{k}={v}" for k, v in params.items()]

    with patch.object(module.dispatcher, "call") as call:
        code, out = run_main(capsys, argv)

    assert code == 1
    envelope = json.loads(out)
    assert envelope["failed"] is True
    assert absent in envelope["msg"]
    call.assert_not_called()


def test_success_envelope(capsys):
    with patch.object(module.dispatcher, "call", return_value="'app@db1'") as call:
        code, out = run_main(
            capsys, ["args", "node=app@db1", "module=erlang", "function=node"]
        )

    assert code == 0
    assert out == '{"changed": true, "msg": "\'app@db1\'"}\n'
    config = call.call_args.args[0]
    assert config.node == "app@db1"
    assert config.timeout == 5000


def test_result_text_is_json_escaped(capsys):
    result = '[{name,"bob"},\n {path,"C:\\\\tmp"}]'
    with patch.object(module.dispatcher, "call", return_value=result):
        code, out = run_main(capsys, ["args", "node=a@b", "module=m", "function=f"])

    assert code == 0
    assert out.count("\n") == 1
    assert json.loads(out) == {"changed": True, "msg": result}


def test_unreachable_node_fails(capsys):
    with patch.object(
        module.dispatcher, "call", side_effect=RemoteCallError("{badrpc,nodedown}")
    ):
        code, out = run_main(capsys, ["args", "node=a@b", "module=m", "function=f"])

    assert code == 1
    assert json.loads(out) == {"failed": True, "msg": "{badrpc,nodedown}"}


def test_timeout_fails_with_timeout_message(capsys):
    with patch.object(
        module.dispatcher, "call", side_effect=CallTimeoutError("{badrpc,timeout}")
    ) as call:
        code, out = run_main(
            capsys,
            [
                "args",
                "node=a@b",
                "module=timer",
                "function=sleep",
                "args=1000",
                "timeout=250",
            ],
        )

    assert code == 1
    envelope = json.loads(out)
    assert envelope["failed"] is True
    assert "timeout" in envelope["msg"]
    assert call.call_args.args[0].timeout == 250
    assert call.call_args.args[0].args == (1000,)


def test_infinity_timeout_is_passed_through(capsys):
    with patch.object(module.dispatcher, "call", return_value="ok") as call:
        code, _ = run_main(
            capsys, ["args", "node=a@b", "module=m", "function=f", "timeout=infinity"]
        )

    assert code == 0
    assert call.call_args.args[0].timeout == INFINITY


def test_bad_args_literal_fails_before_calling(capsys):
    with patch.object(module.dispatcher, "call") as call:
        code, out = run_main(
            capsys, ["args", "node=a@b", "module=m", "function=f", "args=os:cmd(X)"]
        )

    assert code == 1
    assert json.loads(out)["failed"] is True
    call.assert_not_called()


def test_unexpected_error_still_emits_envelope(capsys):
    with patch.object(module.dispatcher, "call", side_effect=KeyError("boom")):
        code, out = run_main(capsys, ["args", "node=a@b", "module=m", "function=f"])

    assert code == 1
    assert json.loads(out) == {"failed": True, "msg": "KeyError: 'boom'"}


def test_invalid_settings_are_reported(capsys, monkeypatch):
    monkeypatch.setenv("ERLANG_RPC_STARTUP_GRACE", "soon")

    code, out = run_main(capsys, ["args", "node=a@b", "module=m", "function=f"])

    assert code == 1
    assert "ERLANG_RPC_STARTUP_GRACE" in json.loads(out)["msg"]


def test_file_and_direct_forms_print_identical_output(capsys, tmp_path):
    args_file = tmp_path / "arguments"
    args_file.write_text(
        "node=app@db1 module=lists function=seq 'args=1, 3' timeout=100 "
        "_ansible_check_mode=False"
    )
    direct = [
        "args",
        "node=app@db1",
        "module=lists",
        "function=seq",
        "args=1, 3",
        "timeout=100",
    ]

    with patch.object(module.dispatcher, "call", return_value="[1,2,3]") as call:
        file_code, file_out = run_main(capsys, [str(args_file)])
        direct_code, direct_out = run_main(capsys, direct)

    assert file_code == direct_code == 0
    assert file_out == direct_out
    assert call.call_args_list[0].args[0] == call.call_args_list[1].args[0]
