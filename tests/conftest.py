"""Shared fixtures: a fake ADB server with one ready device."""

from __future__ import annotations

import pytest_asyncio

from fakes import FakeAdbServer, FakeDevice, FakeFileSystem


@pytest_asyncio.fixture
async def adb_server():
    server = FakeAdbServer(devices=[FakeDevice("emulator-5554")], fs=FakeFileSystem(dirs=["/sdcard"]))
    async with server:
        yield server
