import sys

import pytest

from retouch.exceptions import ToolUnavailable
from retouch.infrastructure.tools.process import ToolError, ToolRunner, ToolTimeout, require_tools, scratch_dir


def test_runner_returns_stdout():
    out = ToolRunner().run([sys.executable, "-c", "print('ok')"])
    assert out.strip() == b"ok"


def test_runner_passes_arguments_without_shell():
    tricky = "$(echo pwned); rm -rf /"
    out = ToolRunner().run([sys.executable, "-c", "import sys; print(sys.argv[1])", tricky])
    assert out.decode().strip() == tricky


def test_non_zero_exit_raises_tool_error():
    with pytest.raises(ToolError) as exc:
        ToolRunner().run([sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"])
    assert exc.value.returncode == 3
    assert exc.value.stderr == "bad"


def test_timeout_kills_and_raises():
    with pytest.raises(ToolTimeout):
        ToolRunner(timeout=0.5).run([sys.executable, "-c", "import time; time.sleep(10)"])


def test_missing_binary_is_tool_unavailable():
    with pytest.raises(ToolUnavailable):
        ToolRunner().run(["retouch-no-such-tool-xyz"])


def test_require_tools_names_missing_binaries():
    with pytest.raises(ToolUnavailable) as exc:
        require_tools([sys.executable, "retouch-no-such-tool-xyz"])
    assert "retouch-no-such-tool-xyz" in exc.value.message
    assert sys.executable not in exc.value.message


def test_scratch_dir_is_removed_on_error():
    with pytest.raises(RuntimeError):
        with scratch_dir() as tmp:
            (tmp / "f.bin").write_bytes(b"x")
            kept = tmp
            raise RuntimeError("boom")
    assert not kept.exists()
