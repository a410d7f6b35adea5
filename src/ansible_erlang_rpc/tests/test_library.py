# python
import json
import os
import shutil
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[3]
SHIM = ROOT / "library" / "erlang_rpc.py"


@pytest.fixture
def shim_env():
    env = {k: v for k, v in os.environ.items() if not k.startswith("ERLANG_RPC_")}
    paths = [str(ROOT / "src"), env.get("PYTHONPATH", "")]
    env["PYTHONPATH"] = os.pathsep.join(p for p in paths if p)
    return env


def run_shim(script, args_file, env):
    return subprocess.run(
        [sys.executable, str(script), str(args_file)],
        capture_output=True,
        text=True,
        env=env,
        timeout=60,
    )


def write_args(tmp_path):
    args_file = tmp_path / "arguments"
    args_file.write_text("module=erlang function=node _ansible_check_mode=False\n")
    return args_file


def test_shim_reports_missing_node_as_failed_envelope(tmp_path, shim_env):
    result = run_shim(SHIM, write_args(tmp_path), shim_env)

    assert result.returncode == 1, result.stderr
    assert json.loads(result.stdout) == {
        "failed": True,
        "msg": "missing required arguments: node",
    }


def test_shim_copied_under_its_own_name_still_runs(tmp_path, shim_env):
    # Ansible ships the module into a temp directory under the same file name
    tmp_dir = tmp_path / "ansible_tmp"
    tmp_dir.mkdir()
    copy = tmp_dir / SHIM.name
    shutil.copy(SHIM, copy)

    result = run_shim(copy, write_args(tmp_path), shim_env)

    assert result.returncode == 1, result.stderr
    assert json.loads(result.stdout)["msg"] == "missing required arguments: node"
