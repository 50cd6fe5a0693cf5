"""Tests for environment-driven configuration."""

from one_agent.infrastructure.config.settings import DEFAULT_DENYLIST, load_settings


def test_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("TAVILY_API_KEY", raising=False)

    settings = load_settings(tmp_path / "missing.env")

    assert settings.context.window_size == 10
    assert settings.context.max_messages == 10
    assert settings.context.retained_tail == 5
    assert settings.context.max_depth == 5
    assert settings.context.summary_timeout == 30.0
    assert settings.context.persist_timeout == 30.0
    assert settings.context.denylist == DEFAULT_DENYLIST
    assert settings.memory.top_k == 2
    assert settings.memory.char_budget == 800
    assert settings.memory.min_score is None
    assert settings.search.tavily_api_key is None
    assert settings.server.port == 3000


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("ONE_AGENT_MAX_DEPTH", "3")
    monkeypatch.setenv("ONE_AGENT_SUMMARY_TIMEOUT", "5")
    monkeypatch.setenv("ONE_AGENT_PERSIST_TIMEOUT", "2.5")
    monkeypatch.setenv("ONE_AGENT_MEMORY_MIN_SCORE", "0.4")
    monkeypatch.setenv("ONE_AGENT_DENYLIST", "foo, bar ,")
    monkeypatch.setenv("TAVILY_API_KEY", "tvly-test")

    settings = load_settings(tmp_path / "missing.env")

    assert settings.context.max_depth == 3
    assert settings.context.summary_timeout == 5.0
    assert settings.context.persist_timeout == 2.5
    assert settings.memory.min_score == 0.4
    assert settings.context.denylist == ["foo", "bar"]
    assert settings.search.tavily_api_key == "tvly-test"


def test_invalid_numbers_fall_back(tmp_path, monkeypatch):
    monkeypatch.setenv("ONE_AGENT_WINDOW_SIZE", "lots")
    monkeypatch.setenv("ONE_AGENT_MEMORY_MIN_SCORE", "high")

    settings = load_settings(tmp_path / "missing.env")

    assert settings.context.window_size == 10
    assert settings.memory.min_score is None


def test_dotenv_file(tmp_path, monkeypatch):
    monkeypatch.delenv("ONE_AGENT_MODEL", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("ONE_AGENT_MODEL=llama3.1:8b\n", encoding="utf-8")

    settings = load_settings(env_file)

    assert settings.inference.model == "llama3.1:8b"
    monkeypatch.delenv("ONE_AGENT_MODEL", raising=False)
