import os

from lifecycle_bus.config import LifecycleBusConfig, load_config, load_dotenv_files
from lifecycle_bus.core.bus.dedup_window import DEFAULT_WINDOW
from lifecycle_bus.core.domain.event_models import KeyPolicy


def test_defaults_from_empty_environment():
    config = LifecycleBusConfig.from_env({})

    assert config.dedup_window == DEFAULT_WINDOW
    assert config.compare_errors is False
    assert config.clear_cache_on_remove is False
    assert config.key_policy is KeyPolicy.CORRELATION
    assert config.completion_delay == 0.0
    assert config.log_level == "INFO"
    assert config.log_file is None


def test_values_from_environment():
    config = LifecycleBusConfig.from_env(
        {
            "LIFECYCLE_DEDUP_WINDOW_MS": "250",
            "LIFECYCLE_COMPARE_ERRORS": "yes",
            "LIFECYCLE_CLEAR_CACHE_ON_REMOVE": "1",
            "LIFECYCLE_KEY_POLICY": "payload",
            "LIFECYCLE_COMPLETION_DELAY_MS": "300",
            "LIFECYCLE_SETTLE_DELAY_MS": "1000",
            "LOG_LEVEL": "debug",
            "LOG_FILE": " logs/bus.log ",
        }
    )

    assert config.dedup_window == 0.25
    assert config.compare_errors is True
    assert config.clear_cache_on_remove is True
    assert config.key_policy is KeyPolicy.PAYLOAD
    assert config.completion_delay == 0.3
    assert config.settle_delay == 1.0
    assert config.log_level == "DEBUG"
    assert config.log_file == "logs/bus.log"


def test_invalid_values_fall_back():
    config = LifecycleBusConfig.from_env(
        {
            "LIFECYCLE_DEDUP_WINDOW_MS": "soon",
            "LIFECYCLE_SETTLE_DELAY_MS": "-50",
            "LIFECYCLE_KEY_POLICY": "random",
            "LIFECYCLE_COMPARE_ERRORS": "maybe",
        }
    )

    assert config.dedup_window == DEFAULT_WINDOW
    assert config.settle_delay == 0.0
    assert config.key_policy is KeyPolicy.CORRELATION
    assert config.compare_errors is False


def test_bus_policy_and_engine_options(quick_config):
    policy = quick_config.bus_policy()
    assert policy.dedup_window == 0.02

    options = quick_config.engine_options()
    assert options["policy"] == policy
    assert options["key_policy"] is KeyPolicy.CORRELATION
    assert options["completion_delay"] == 0.0


def test_dotenv_files_do_not_override_environment(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("LIFECYCLE_DEDUP_WINDOW_MS=500\nLOG_LEVEL=WARNING\n")
    monkeypatch.delenv("LIFECYCLE_DEDUP_WINDOW_MS", raising=False)
    monkeypatch.setenv("LOG_LEVEL", "ERROR")

    processed = load_dotenv_files([env_file, tmp_path / "missing.env"])
    assert processed == (env_file,)

    config = LifecycleBusConfig.from_env()
    assert config.dedup_window == 0.5
    assert config.log_level == "ERROR"


def test_load_config_reads_given_files(tmp_path, monkeypatch):
    env_file = tmp_path / "bus.env"
    env_file.write_text("LIFECYCLE_KEY_POLICY=payload\n")
    monkeypatch.delenv("LIFECYCLE_KEY_POLICY", raising=False)

    config = load_config(dotenv_paths=[env_file])

    assert config.key_policy is KeyPolicy.PAYLOAD
    assert os.environ["LIFECYCLE_KEY_POLICY"] == "payload"
