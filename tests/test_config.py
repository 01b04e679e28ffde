import pytest

from roomdrop.__main__ import build_parser
from roomdrop.core.config import CHUNK_SIZE, ClientConfig, ServerConfig


def test_server_config_reads_environment(monkeypatch):
    monkeypatch.setenv("ROOMDROP_PORT", "4100")
    monkeypatch.setenv("ROOMDROP_SCOPE_RELAY_TO_ROOM", "true")

    config = ServerConfig()

    assert config.port == 4100
    assert config.scope_relay_to_room is True
    assert config.relay_path == "/ws"


def test_explicit_values_win_over_environment(monkeypatch):
    monkeypatch.setenv("ROOMDROP_PORT", "4100")

    assert ServerConfig(port=5000).port == 5000


def test_client_config_builds_ice_servers(monkeypatch):
    monkeypatch.setenv("ROOMDROP_STUN_URLS", "stun:a.test:3478, stun:b.test:3478")
    monkeypatch.setenv("ROOMDROP_TURN_URL", "turn:turn.test:3478")
    monkeypatch.setenv("ROOMDROP_TURN_USERNAME", "user")
    monkeypatch.setenv("ROOMDROP_TURN_PASSWORD", "secret")

    config = ClientConfig()

    urls = [server.urls for server in config.rtc_config.iceServers]
    assert urls == ["stun:a.test:3478", "stun:b.test:3478", "turn:turn.test:3478"]
    assert config.rtc_config.iceServers[-1].username == "user"
    assert config.chunk_size == CHUNK_SIZE


def test_client_config_rejects_oversized_chunks():
    with pytest.raises(ValueError):
        ClientConfig(chunk_size=CHUNK_SIZE + 1)


def test_cli_parses_join_command():
    args = build_parser().parse_args(["join", "lobby", "--send", "a.txt"])

    assert args.command == "join"
    assert args.room == "lobby"
    assert args.send == "a.txt"
