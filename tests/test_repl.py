import asyncio
import importlib.util
import sys
from pathlib import Path
import uuid
import pytest

def _load_repl_module():
    """Dynamically load the top-level pycell.py (REPL) as a module with a unique name."""
    repl_path = Path(__file__).resolve().parents[1] / "pycell.py"
    mod_name = f"pycell_repl_for_test_{uuid.uuid4().hex}"
    spec = importlib.util.spec_from_file_location(mod_name, str(repl_path))
    mod = importlib.util.module_from_spec(spec)
    sys.modules[mod_name] = mod
    assert spec.loader is not None
    spec.loader.exec_module(mod)
    return mod

@pytest.fixture(autouse=True)
def _repl_env(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, "argv", ["pycell.py"])
    monkeypatch.delenv("PYCELL_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)

def _feed(repl, monkeypatch, lines):
    it = iter(lines)

    async def fake_ainput(prompt: str) -> str:
        return next(it)
    monkeypatch.setattr(repl, "ainput", fake_ainput)

@pytest.mark.asyncio
async def test_repl_exit_immediately(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(repl, monkeypatch, ["exit"])

    await repl.main()
    out = capsys.readouterr().out
    assert "pycell REPL v0.1" in out
    assert "Type 'exit' or press Ctrl+D to quit." in out

@pytest.mark.asyncio
async def test_repl_prints_values(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(repl, monkeypatch, [
        "greeting: str = 'hello from pycell'\n",
        "greeting\n",
        "1 + 2\n",
        "exit\n",
    ])

    await repl.main()
    out, err = capsys.readouterr()
    assert "pycell REPL v0.1" in out
    assert "'hello from pycell'" in out
    assert "\n3\n" in out or out.rstrip().endswith("3")
    assert err == ""

@pytest.mark.asyncio
async def test_repl_reads_indented_blocks(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(repl, monkeypatch, [
        "def double(n):\n",
        "    return n * 2\n",
        "\n",
        "double(21)\n",
        "exit\n",
    ])

    await repl.main()
    out, err = capsys.readouterr()
    assert "42" in out
    assert err == ""

@pytest.mark.asyncio
async def test_repl_errors_print_to_stderr(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(repl, monkeypatch, [
        "1 / 0\n",
        "undefined_thing\n",
        "exit\n",
    ])

    await repl.main()
    out, err = capsys.readouterr()
    assert "pycell REPL v0.1" in out
    assert "ZeroDivisionError: division by zero" in err
    assert "1:1 - name 'undefined_thing' is not defined" in err

@pytest.mark.asyncio
async def test_repl_reset(monkeypatch, capsys):
    repl = _load_repl_module()
    _feed(repl, monkeypatch, [
        "x: int = 1\n",
        "%reset\n",
        "x\n",
        "exit\n",
    ])

    await repl.main()
    err = capsys.readouterr().err
    assert "name 'x' is not defined" in err

@pytest.mark.asyncio
async def test_repl_eof_quits(monkeypatch, capsys):
    repl = _load_repl_module()

    async def fake_ainput(prompt: str) -> str:
        raise EOFError
    monkeypatch.setattr(repl, "ainput", fake_ainput)

    await repl.main()
    out = capsys.readouterr().out
    assert "pycell REPL v0.1" in out
    assert "Exiting." in out

@pytest.mark.asyncio
async def test_run_script_file(tmp_path, capsys):
    repl = _load_repl_module()
    script = tmp_path / "script.py"
    script.write_text("import helper\nhelper.VALUE * 2\n", encoding="utf-8")
    (tmp_path / "helper.py").write_text("VALUE = 21\n", encoding="utf-8")

    await repl.run_script_file(str(script))
    assert "42" in capsys.readouterr().out

@pytest.mark.asyncio
async def test_run_script_file_failure_exits(tmp_path, capsys):
    repl = _load_repl_module()
    script = tmp_path / "bad.py"
    script.write_text("raise RuntimeError('nope')\n", encoding="utf-8")

    with pytest.raises(SystemExit) as exc:
        await repl.run_script_file(str(script))
    assert exc.value.code == 1
    assert "RuntimeError: nope" in capsys.readouterr().err

@pytest.mark.asyncio
async def test_run_script_file_missing(tmp_path, capsys):
    repl = _load_repl_module()
    with pytest.raises(SystemExit):
        await repl.run_script_file(str(tmp_path / "missing.py"))
    assert "file not found" in capsys.readouterr().err

@pytest.mark.asyncio
async def test_config_from_environment(tmp_path, monkeypatch):
    repl = _load_repl_module()
    cfg = tmp_path / "pycell.yaml"
    cfg.write_text("root_dir: lib\ninterrupt_message: stop\n", encoding="utf-8")
    monkeypatch.setenv("PYCELL_CONFIG", str(cfg))

    config = repl.make_config(str(tmp_path))
    assert config.root_dir == str(tmp_path / "lib")
    assert config.interrupt_message == "stop"
