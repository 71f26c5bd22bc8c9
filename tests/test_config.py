"""Tests for the runtime context and its environment overrides."""

import pytest

from adb_host_mcp.config import AdbContext, Backoff, StaticAliases


def test_defaults():
    """Without environment variables the usual defaults apply."""
    context = AdbContext.from_env({})
    assert context.host == "127.0.0.1"
    assert context.port == 5037
    assert context.adb_path == "adb"
    assert context.keep_partial_pulls


def test_environment():
    """Server address, port and adb path come from the environment."""
    context = AdbContext.from_env(
        {
            "ANDROID_ADB_SERVER_ADDRESS": "10.0.0.5",
            "ANDROID_ADB_SERVER_PORT": "5038",
            "ADB_PATH": "/opt/platform-tools/adb",
        }
    )
    assert context.host == "10.0.0.5"
    assert context.port == 5038
    assert context.adb_path == "/opt/platform-tools/adb"


def test_invalid_port_ignored():
    """A non-numeric port falls back to the default."""
    assert AdbContext.from_env({"ANDROID_ADB_SERVER_PORT": "abc"}).port == 5037


def test_overrides_win():
    """Explicit overrides beat the environment."""
    context = AdbContext.from_env({"ANDROID_ADB_SERVER_PORT": "5038"}, port=6000)
    assert context.port == 6000


def test_server_command():
    """The server is launched on the configured port."""
    context = AdbContext(port=5099, adb_path="/x/adb")
    assert context.server_command() == ["/x/adb", "-L", "tcp:5099", "nodaemon", "server"]


@pytest.mark.parametrize("kwargs", [{"chunk_size": 0}, {"chunk_size": 70000}, {"max_workers": 0}])
def test_validation(kwargs):
    """Out-of-range tunables are rejected."""
    with pytest.raises(ValueError):
        AdbContext(**kwargs)


def test_backoff_is_bounded():
    """Backoff delays grow and stop at the maximum."""
    backoff = Backoff(attempts=5, initial=0.1, factor=2.0, maximum=0.5)
    assert backoff.delays() == [0.1, 0.2, 0.4, 0.5, 0.5]
    assert backoff.budget == pytest.approx(1.7)


def test_static_aliases():
    """Aliases resolve to serials; unknown names give None."""
    aliases = StaticAliases({"tablet": "R52N"})
    assert aliases.lookup_alias("tablet") == "R52N"
    assert aliases.lookup_alias("phone") is None


def test_rename_replaces_previous_name():
    """A device keeps one name; renaming drops the old one."""
    aliases = StaticAliases({"tablet": "R52N"})
    aliases.rename("R52N", " kitchen ")
    assert aliases.lookup_alias("kitchen") == "R52N"
    assert aliases.lookup_alias("tablet") is None
    assert aliases.name_for("R52N") == "kitchen"
    assert aliases.name_for("R58M") is None


def test_rename_takes_name_from_other_device():
    """Reusing a name moves it to the renamed device."""
    aliases = StaticAliases({"phone": "R58M"})
    aliases.rename("R52N", "phone")
    assert aliases.lookup_alias("phone") == "R52N"
    assert aliases.name_for("R58M") is None


def test_rename_refuses_blank_name():
    """Blank names are rejected."""
    with pytest.raises(ValueError):
        StaticAliases().rename("R52N", "   ")
