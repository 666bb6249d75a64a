from __future__ import annotations

import pytest

from src.app.settings import Settings


def test_tool_disabled_models_parse_comma_list() -> None:
    configured = Settings(chat_tools_disabled_models_raw="deepseek-r1:32b, llama3 ,,")
    assert configured.tools_disabled_models == frozenset({"deepseek-r1:32b", "llama3"})


def test_tools_url_is_optional() -> None:
    assert Settings(chat_tools_url_raw="http://tools.test/").tools_url == "http://tools.test"
    assert Settings(chat_tools_url_raw="  ").tools_url is None


def test_system_template_override() -> None:
    assert Settings(chat_system_template_raw="Answer: {userText}").system_template == "Answer: {userText}"
    assert Settings(chat_system_template_raw="").system_template is None


def test_derived_values_ignore_later_environment_changes(monkeypatch: pytest.MonkeyPatch) -> None:
    configured = Settings(
        chat_tools_disabled_models_raw="llama3",
        chat_system_template_raw="",
        chat_tools_url_raw="",
    )
    monkeypatch.setenv("CHAT_TOOLS_DISABLED_MODELS", "other-model")
    monkeypatch.setenv("CHAT_SYSTEM_TEMPLATE", "From env: {userText}")
    monkeypatch.setenv("CHAT_TOOLS_URL", "http://elsewhere.test")

    assert configured.tools_disabled_models == frozenset({"llama3"})
    assert configured.system_template is None
    assert configured.tools_url is None


def test_stream_delay_defaults_to_configured_milliseconds() -> None:
    assert Settings(chat_stream_delay_ms=50).stream_delay_seconds == pytest.approx(0.05)
    assert Settings(chat_stream_delay_ms=-5).stream_delay_seconds == 0


def test_run_serves_app_on_configured_address(monkeypatch: pytest.MonkeyPatch) -> None:
    from src.app import main

    served: list[dict] = []
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: served.append({"app": app, **kwargs}))
    monkeypatch.setattr(
        main, "settings", Settings(api_host="127.0.0.1", api_port=9100, log_level="DEBUG")
    )

    main.run()

    assert served == [{"app": main.app, "host": "127.0.0.1", "port": 9100, "log_level": "debug"}]
