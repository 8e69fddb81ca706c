"""
Tests for server wiring
"""

import logging

import pytest

from src.chatroom import main


def test_build_app_shares_room_locks():
    ws_server, reaper = main.build_app("localhost", 0, 1, 2)

    coordinator = ws_server.service.coordinator
    assert coordinator.locks is reaper.locks
    assert coordinator.rooms is reaper.rooms
    assert ws_server.service.transport is ws_server
    assert reaper.interval == 1
    assert reaper.threshold == 2


def test_main_reads_environment(monkeypatch):
    captured = {}

    async def fake_run_server(host, port, reap_interval, threshold):
        captured.update(
            host=host, port=port, interval=reap_interval, threshold=threshold
        )

    monkeypatch.setenv("WEBSOCKET_HOST", "127.0.0.1")
    monkeypatch.setenv("WEBSOCKET_PORT", "4000")
    monkeypatch.setenv("REAP_INTERVAL", "5")
    monkeypatch.setenv("INACTIVITY_THRESHOLD", "30")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setattr(main, "run_server", fake_run_server)
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: None)

    main.main()

    assert captured == {
        "host": "127.0.0.1",
        "port": 4000,
        "interval": 5.0,
        "threshold": 30.0,
    }


@pytest.mark.asyncio
async def test_purge_on_shutdown_clears_presence():
    ws_server, _ = main.build_app("localhost", 0)
    directory = ws_server.service.directory
    await directory.register_connection("conn-a")

    assert await directory.purge() == 1
    assert await directory.list_all() == []
