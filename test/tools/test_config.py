import socket
from pathlib import Path

from pydantic import ValidationError
from pytest import MonkeyPatch, raises

from scribe.tools import daemon
from scribe.tools.config import DEFAULT_PROJECT, Config
from scribe.tools.daemon import (
    DaemonError,
    configure_daemon,
    is_daemon_up,
    launch_daemon,
)


def test_defaults():
    config = Config.default()

    assert config.storage_max == "1GB"
    assert config.pinning
    assert config.project == DEFAULT_PROJECT
    assert config.remote_cid == ""
    assert config.api_endpoint == "127.0.0.1:5001"


def test_yaml(tmp_path: Path):
    path = tmp_path / "config.yaml"

    config = Config(
        ipfs_path=tmp_path / "ipfs",
        storage_max="500MB",
        pinning=False,
        project="alpha",
        remote_cid="bafyreiremote",
        api_port=5002,
    )
    config.dump_yaml(path)

    assert "storage_max: 500MB" in path.read_text()
    assert Config.load_yaml(path) == config


def test_yaml_empty(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    assert Config.load_yaml(path) == Config.default()


def test_yaml_invalid(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("- not\n- a\n- mapping\n")

    with raises(ValueError):
        Config.load_yaml(path)


def test_validation():
    assert Config(storage_max="2 tb").storage_max == "2TB"
    assert Config(storage_max="1.5GB").storage_max == "1.5GB"

    with raises(ValidationError):
        Config(storage_max="lots")

    with raises(ValidationError):
        Config(storage_max="10")

    with raises(ValidationError):
        Config(project="")


def test_ipfs_path_expanded():
    config = Config.model_validate({"ipfs_path": "~/ipfs-repo"})
    assert config.ipfs_path == Path.home() / "ipfs-repo"


def test_check(tmp_path: Path):
    config = Config(ipfs_path=tmp_path / "nested" / "ipfs")

    config.check()
    assert config.ipfs_path.is_dir()

    # existing folder is fine
    config.check()

    file = tmp_path / "file"
    file.write_text("")

    with raises(ValueError):
        Config(ipfs_path=file).check()


def test_daemon_down():
    # find a port with nothing listening on it
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]

    assert not is_daemon_up(Config(api_port=port))


def test_daemon_up():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        sock.listen()
        port = sock.getsockname()[1]

        assert is_daemon_up(Config(api_port=port))


def test_daemon_missing_binary(monkeypatch: MonkeyPatch, tmp_path: Path):
    monkeypatch.setattr(daemon, "IPFS_BIN", str(tmp_path / "nonexistent-ipfs"))
    config = Config(ipfs_path=tmp_path / "ipfs")

    with raises(DaemonError):
        configure_daemon(config)

    with raises(DaemonError):
        launch_daemon(config, timeout=0.5)
