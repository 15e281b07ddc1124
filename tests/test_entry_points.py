import pytest

import main as root_main
from lifecycle_bus import __main__ as module_main


@pytest.fixture()
def calls(monkeypatch, quick_config):
    recorded = []

    def fake_load_config(**kwargs):
        recorded.append("load_config")
        return quick_config

    async def fake_run_demo(config):
        recorded.append(config)
        return []

    for entry in (root_main, module_main):
        monkeypatch.setattr(entry, "load_config", fake_load_config)
        monkeypatch.setattr(entry, "run_demo", fake_run_demo)
        monkeypatch.setattr(entry, "configure_logging", lambda **kwargs: recorded.append("logging"))
    monkeypatch.delenv("DEMO_PROFILE", raising=False)
    return recorded


@pytest.mark.parametrize("entry", [root_main, module_main], ids=["main.py", "python -m"])
def test_entry_points_share_config_loading(entry, calls, quick_config):
    entry.main()

    assert calls == ["load_config", "logging", quick_config]


def test_root_entry_point_rejects_unknown_profile(calls, monkeypatch):
    monkeypatch.setenv("DEMO_PROFILE", "discord")

    with pytest.raises(SystemExit):
        root_main.main()
    assert calls == ["load_config", "logging"]
