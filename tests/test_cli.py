import logging
import threading
from unittest.mock import patch

import pytest
import yaml

from natscli import cli
from natscli.core import Client


def test_help_exits_without_connecting(capsys):
    with patch.object(Client, "run") as run, patch.object(Client, "run_connection_test") as test:
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["-help"])
    assert exc_info.value.code == 0
    assert "-host" in capsys.readouterr().out
    run.assert_not_called()
    test.assert_not_called()


def test_short_help_flag():
    with pytest.raises(SystemExit) as exc_info:
        cli.main(["-h"])
    assert exc_info.value.code == 0


def test_go_style_flags_parsed():
    args = cli.build_parser().parse_args(
        ["-host", "broker:4443", "-tls", "-cert", "c.pem", "-key", "k.pem", "-ca", "ca.pem"]
    )
    settings = cli.load_settings(args)

    assert settings.host == "broker:4443"
    assert settings.tls is True
    assert settings.test is False
    assert settings.cert == "c.pem"
    assert settings.key == "k.pem"
    assert settings.ca == "ca.pem"
    assert settings.connection_options().server_url == "tls://broker:4443"


def test_flags_override_yaml(tmp_path):
    path = tmp_path / "client.yaml"
    path.write_text(yaml.dump({"host": "yaml:4222", "request_timeout": 3.0}))

    args = cli.build_parser().parse_args(["-config", str(path), "-host", "flag:4222"])
    settings = cli.load_settings(args)

    assert settings.host == "flag:4222"
    assert settings.request_timeout == 3.0


def test_missing_config_file(tmp_path):
    args = cli.build_parser().parse_args(["-config", str(tmp_path / "missing.yaml")])
    with pytest.raises(SystemExit, match="not found"):
        cli.load_settings(args)


def test_test_mode_skips_repl():
    with patch.object(Client, "run_connection_test", return_value=0) as test, \
            patch.object(Client, "run") as run, \
            patch.object(cli, "setup_logging"):
        assert cli.main(["-test", "-host", "127.0.0.1:1"]) == 0
    test.assert_called_once()
    run.assert_not_called()


def test_repl_mode_exit_status():
    with patch.object(Client, "run", return_value=1) as run, patch.object(cli, "setup_logging"):
        assert cli.main(["-host", "127.0.0.1:1"]) == 1
    run.assert_called_once()


def test_keyboard_interrupt_during_startup():
    with patch.object(Client, "run", side_effect=KeyboardInterrupt), \
            patch.object(cli, "setup_logging"):
        assert cli.main([]) == 0


def test_test_mode_against_unreachable_broker(capsys):
    """Real nats-py dial against a closed port reports the dial error."""
    result = {}

    def run():
        result["status"] = cli.main(["-test", "-host", "127.0.0.1:1", "-connect-timeout", "0.5"])

    # signal handlers can only be installed from the main thread
    with patch.object(cli, "setup_logging"), patch.object(cli.signal, "signal"):
        t = threading.Thread(target=run, daemon=True)
        t.start()
        t.join(timeout=10)

    assert not t.is_alive()
    assert result["status"] == 1
    assert capsys.readouterr().out.startswith("Connection Failed: ")


def test_logging_splits_stdout_and_stderr(capsys):
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        cli.setup_logging(logging.INFO)
        log = logging.getLogger("natscli.test")
        log.info("dialing broker")
        log.error("dial failed")
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(level)

    captured = capsys.readouterr()
    assert "INFO natscli.test: dialing broker" in captured.out
    assert "dial failed" not in captured.out
    assert "ERROR natscli.test: dial failed" in captured.err


def test_default_level_keeps_info_off_stdout(capsys):
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        cli.setup_logging()
        logging.getLogger("natscli.test").info("connected")
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(level)

    assert "connected" not in capsys.readouterr().out
