import logging
import sys
import types

import pytest

from qemujuicy import app, logs
from qemujuicy.context import AppContext, resolve_app_dir
from qemujuicy.errors import ConfigError
from qemujuicy.properties import AppProperties


def test_version_flag(capsys):
    assert app.main(["-v"]) == 0
    assert capsys.readouterr().out.strip() == "QemuJuicy version 0.6.7"


def test_help_flag(capsys):
    assert app.main(["-h"]) == 0
    out = capsys.readouterr().out
    assert "QemuJuicy usage:" in out
    assert "-q" in out


@pytest.mark.parametrize("argv", [["-x"], ["--verbose"], ["extra"]])
def test_unknown_argument_exits_1(argv, capsys):
    with pytest.raises(SystemExit) as exc_info:
        app.main(argv)
    assert exc_info.value.code == 1
    assert "usage:" in capsys.readouterr().err


def test_quiet_flag_parsed():
    args = app.build_parser().parse_args(["-q"])
    assert args.quiet and not args.help and not args.version


def test_config_error_exits_1(monkeypatch):
    def broken(verbose=True):
        raise ConfigError("Cannot create or write to '/nowhere'")

    monkeypatch.setattr(app, "startup", broken)
    with pytest.raises(SystemExit) as exc_info:
        app.main(["-q"])
    assert exc_info.value.code == 1


def test_main_runs_gui_and_stores_on_exit(tmp_path, monkeypatch, capsys):
    props = AppProperties.open(str(tmp_path / "config.xml"))
    context = AppContext(tmp_path, "linux", props, verbose=False)
    monkeypatch.setattr(app, "startup", lambda verbose=True: context)
    monkeypatch.setattr(app, "install_excepthook", lambda: None)
    fake_gui = types.SimpleNamespace(run=lambda ctx: 0)
    monkeypatch.setitem(sys.modules, "qemujuicy.gui", fake_gui)
    monkeypatch.setattr("qemujuicy.gui", fake_gui, raising=False)
    props.set(AppProperties.DEFAULT_CPUS, "4")
    assert app.main(["-q"]) == 0
    assert AppProperties.load(props.path).get(AppProperties.DEFAULT_CPUS) == "4"
    assert "QemuJuicy, bye." in capsys.readouterr().out


def test_resolve_app_dir(tmp_path):
    assert resolve_app_dir("linux", {}, tmp_path) == tmp_path / ".qemujuicy"
    assert resolve_app_dir("windows", {"APPDATA": str(tmp_path)}) == tmp_path / "QemuJuicy"
    assert resolve_app_dir("windows", {"LOCALAPPDATA": str(tmp_path)}) == tmp_path / "QemuJuicy"


def test_context_first_start(tmp_path):
    context = AppContext.create(verbose=False, os_name="linux", environ={}, home=tmp_path)
    assert context.first_start
    assert context.config_path.is_file()
    assert context.vm_dir == tmp_path / ".qemujuicy" / "vm"
    assert context.vm_dir.is_dir()
    again = AppContext.create(verbose=False, os_name="linux", environ={}, home=tmp_path)
    assert not again.first_start
    assert again.properties.get(AppProperties.VM_DISK_PATH) == str(context.vm_dir)


def test_context_unwritable_app_dir(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(ConfigError):
        AppContext.create(os_name="linux", environ={}, home=blocker)


def test_init_logging_writes_file(tmp_path, capsys):
    log_path = tmp_path / "log.txt"
    logs.init_logging(str(log_path), verbose=True)
    log = logging.getLogger("qemujuicy.test")
    log.info("hello info")
    log.debug("hello debug")
    log.error("hello error")
    logs.log_environment({"PATH": "/bin", "UNRELATED": "x"})
    logs.flush()
    text = log_path.read_text(encoding="utf-8")
    assert "INFO - hello info" in text
    assert "DEBUG - hello debug" in text
    assert "Env - PATH -> /bin" in text
    assert "UNRELATED" not in text
    captured = capsys.readouterr()
    assert "hello info" in captured.out
    assert "hello error" not in captured.out
    assert "hello error" in captured.err
    assert "hello debug" not in captured.out


def test_init_logging_quiet(tmp_path, capsys):
    logs.init_logging(str(tmp_path / "log.txt"), verbose=False)
    logging.getLogger("qemujuicy.test").info("quiet info")
    assert "quiet info" not in capsys.readouterr().out


def test_init_logging_unwritable_log_file(tmp_path):
    with pytest.raises(ConfigError):
        logs.init_logging(str(tmp_path / "missing" / "log.txt"))


def test_unwritable_log_file_exits_1(tmp_path, monkeypatch, capsys):
    props = AppProperties.open(str(tmp_path / "config.xml"))
    context = AppContext(tmp_path / "missing", "linux", props)
    monkeypatch.setattr(AppContext, "create", classmethod(lambda cls, verbose=True: context))
    with pytest.raises(SystemExit) as exc_info:
        app.main(["-q"])
    assert exc_info.value.code == 1
    assert "log.txt" in capsys.readouterr().out


def test_startup_verbose_off_in_configuration(tmp_path, monkeypatch):
    props = AppProperties.open(str(tmp_path / "config.xml"))
    props.set(AppProperties.VERBOSE, False)
    context = AppContext(tmp_path, "linux", props)
    monkeypatch.setattr(AppContext, "create", classmethod(lambda cls, verbose=True: context))
    assert app.startup(verbose=True).verbose is False
    logs.flush()
    assert "Configuration:" in (tmp_path / "log.txt").read_text(encoding="utf-8")
