"""End-to-end client tests against the fake page, plus the CLI."""

import asyncio
import json

import pytest

import gemini
from conftest import FakeElement, FakePage
from config import GEMINI_URL, STORAGE_PREFERENCE_KEY
from errors import (
    AuthenticationRequiredError, ElementNotFoundError, ResponseTimeoutError, ValidationError,
)
from gemini import ClientOptions, GeminiClient, build_parser, main, run_query
from model_registry import ModelId

ANSWER = "Recursion is a function that calls itself until it reaches a base case."
COOKIES = [{"name": "SID", "value": "abc", "domain": ".google.com", "path": "/"}]


def _studio_page():
    page = FakePage(body="Run prompt\nSettings")
    page.add("ms-prompt-input-wrapper textarea", FakeElement())
    page.add("ms-run-button button", FakeElement("Run"))
    page.add("ms-text-chunk", FakeElement(ANSWER))
    page.browser_cookies = COOKIES
    page.busy_until = 20
    return page


def _factory(page):
    calls = []

    async def factory(options):
        calls.append(options)
        return page

    factory.calls = calls
    return factory


@pytest.fixture(autouse=True)
def no_data_dirs(monkeypatch):
    monkeypatch.setattr(gemini, "ensure_data_dirs", lambda: None)


def test_query_with_explicit_model(store):
    store.save(COOKIES)
    page = _studio_page()

    response = asyncio.run(run_query("What is recursion?", "flash", store=store,
                                     page_factory=_factory(page)))

    assert response == ANSWER
    assert page.injected == COOKIES
    assert page.navigations == [GEMINI_URL]
    assert json.loads(page.local_storage[STORAGE_PREFERENCE_KEY])["promptModel"] == "models/gemini-flash-latest"
    assert page.closed

    record = store.load()
    assert record.preferred_model == ModelId.FLASH
    assert record.history.selection_method == "cli"
    assert record.history.fallback_used is False
    assert record.cookies == COOKIES


def test_query_uses_stored_preference(store):
    store.save_preferred_model(ModelId.FLASH, "manual")
    page = _studio_page()

    asyncio.run(run_query("hi", store=store, page_factory=_factory(page)))

    assert json.loads(page.local_storage[STORAGE_PREFERENCE_KEY])["promptModel"] == "models/gemini-flash-latest"
    assert store.get_selection_history().selection_method == "automated"


def test_invalid_alias_never_launches_browser(store):
    factory = _factory(_studio_page())
    with pytest.raises(ValidationError):
        asyncio.run(run_query("hi", "gpt-4", store=store, page_factory=factory))
    assert factory.calls == []


def test_storage_failure_falls_back_to_dropdown(store):
    page = _studio_page()
    page.storage_failures = 1
    flash = FakeElement("Gemini Flash Latest")
    page.add("ms-model-selector mat-select",
             FakeElement("Model", on_click=lambda p: p.elements.update({"mat-option": [flash]})))

    response = asyncio.run(run_query("hi", "flash", store=store, page_factory=_factory(page)))

    assert response == ANSWER
    assert flash.clicks == 1
    assert store.get_selection_history().fallback_used is True


def test_timeout_resets_session(store):
    page = _studio_page()
    page.busy_until = float("inf")
    options = ClientOptions(response_timeout=6)

    with pytest.raises(ResponseTimeoutError):
        asyncio.run(run_query("hi", options=options, store=store, page_factory=_factory(page)))

    assert page.navigations == [GEMINI_URL, GEMINI_URL]
    assert page.closed


def test_keep_session_alive_skips_reset(store):
    page = _studio_page()
    page.busy_until = float("inf")
    options = ClientOptions(response_timeout=6, keep_session_alive=True)

    with pytest.raises(ResponseTimeoutError):
        asyncio.run(run_query("hi", options=options, store=store, page_factory=_factory(page)))

    assert page.navigations == [GEMINI_URL]


def test_missing_input_in_debug_takes_screenshot(store, tmp_path):
    page = _studio_page()
    del page.elements["ms-prompt-input-wrapper textarea"]
    options = ClientOptions(debug=True, screenshot_dir=tmp_path)
    client = GeminiClient(options, store=store, page_factory=_factory(page))

    with pytest.raises(ElementNotFoundError):
        asyncio.run(client.query("hi"))

    assert page.screenshots == ["debug.png"]


def test_debug_query_takes_screenshots(store, tmp_path, capsys):
    page = _studio_page()
    options = ClientOptions(screenshot_dir=tmp_path)

    response = asyncio.run(run_query("hi", debug=True, options=options, store=store,
                                     page_factory=_factory(page)))

    assert response == ANSWER
    assert page.screenshots == ["before.png", "response_ready.png", "after.png"]
    err = capsys.readouterr().err
    assert "Last 20 lines of the page:" in err
    assert ">> Run prompt" in err


def test_model_selection_disabled(store):
    page = _studio_page()
    options = ClientOptions(enable_model_selection=False)

    asyncio.run(run_query("hi", options=options, store=store, page_factory=_factory(page)))

    assert page.local_storage == {}


def test_session_persistence_disabled(store):
    store.save(COOKIES, ModelId.FLASH)
    before = store.path.read_text()
    page = _studio_page()
    options = ClientOptions(enable_session_persistence=False)

    asyncio.run(run_query("hi", options=options, store=store, page_factory=_factory(page)))

    assert page.injected == []
    assert store.path.read_text() == before
    # Without the stored preference the default model is applied
    assert json.loads(page.local_storage[STORAGE_PREFERENCE_KEY])["promptModel"] == "models/gemini-2.5-pro"


def test_login_redirect_raises(store):
    page = _studio_page()
    page.redirect_url = "https://accounts.google.com/ServiceLogin?continue=aistudio"

    with pytest.raises(AuthenticationRequiredError) as exc:
        asyncio.run(run_query("hi", store=store, page_factory=_factory(page)))

    assert exc.value.url == page.redirect_url
    assert exc.value.stage == "authentication"


def test_interactive_sign_in_saves_cookies(store, tmp_path):
    page = _studio_page()
    page.redirect_url = "https://accounts.google.com/signin"

    def sign_in(message):
        page.url = GEMINI_URL
        return ""

    options = ClientOptions(debug=True, screenshot_dir=tmp_path)
    client = GeminiClient(options, store=store, page_factory=_factory(page), operator_prompt=sign_in)
    asyncio.run(client.initialize())

    assert store.load().cookies == COOKIES


def test_resolve_model(store):
    client = GeminiClient(ClientOptions(), store=store)
    assert client.resolve_model() == ModelId.PRO

    store.save_preferred_model(ModelId.FLASH)
    assert client.resolve_model() == ModelId.FLASH

    client.options.model = ModelId.PRO
    assert client.resolve_model() == ModelId.PRO


# --- CLI ---

def test_parser_joins_prompt_words():
    args = build_parser().parse_args(["-m", "flash", "--json", "what", "is", "this"])
    assert " ".join(args.prompt) == "what is this"
    assert args.model == "flash"
    assert args.json


def test_list_models(capsys):
    main(["--list-models"])
    out = capsys.readouterr().out
    assert "Gemini 2.5 Pro (models/gemini-2.5-pro)" in out
    assert "Gemini Flash Latest" in out


def test_list_models_json(capsys):
    main(["--list-models", "--json"])
    models = json.loads(capsys.readouterr().out)
    assert [m["id"] for m in models] == ["gemini-2.5-pro", "gemini-flash-latest"]
    assert models[0]["default"] is True


def test_missing_prompt_is_usage_error():
    with pytest.raises(SystemExit) as exc:
        main([])
    assert exc.value.code == 2


def test_invalid_model_exits_1(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--model", "gpt-4", "hi"])
    assert exc.value.code == 1
    assert "Unrecognized model argument: 'gpt-4'" in capsys.readouterr().err


def test_json_output(monkeypatch, capsys):
    seen = {}

    async def fake_run_query(prompt, model_alias=None, debug=False, options=None, **kwargs):
        seen["options"] = options
        return ANSWER

    monkeypatch.setattr(gemini, "run_query", fake_run_query)
    main(["--json", "--no-session", "hello", "world"])

    out = json.loads(capsys.readouterr().out)
    assert out["success"] is True
    assert out["response"] == ANSWER
    assert out["prompt"] == "hello world"
    assert out["model"] == "Gemini 2.5 Pro"
    assert seen["options"].enable_session_persistence is False


def test_error_output_json(monkeypatch, capsys):
    async def fake_run_query(*args, **kwargs):
        raise ResponseTimeoutError(120, 122)

    monkeypatch.setattr(gemini, "run_query", fake_run_query)
    with pytest.raises(SystemExit) as exc:
        main(["--json", "--no-session", "hi"])

    assert exc.value.code == 1
    out = json.loads(capsys.readouterr().out)
    assert out == {"success": False, "stage": "generation", "error": str(ResponseTimeoutError(120, 122))}


def test_clear_session(monkeypatch, store, capsys):
    store.save(COOKIES)
    monkeypatch.setattr(gemini, "SessionStore", lambda verbose=False: store)
    main(["--clear-session"])
    assert not store.path.exists()
    assert "Session cleared." in capsys.readouterr().err


def test_cookie_read_failure_keeps_response(store, capsys):
    page = _studio_page()

    async def broken_cookies():
        raise RuntimeError("CDP connection lost")

    page.cookies = broken_cookies

    response = asyncio.run(run_query("hi", "flash", store=store, page_factory=_factory(page)))

    assert response == ANSWER
    assert page.navigations == [GEMINI_URL]
    assert "Could not save session cookies: CDP connection lost" in capsys.readouterr().err
    # The model preference was still recorded by the selection step
    assert store.get_preferred_model() == ModelId.FLASH


def test_cookie_read_failure_after_sign_in(store, tmp_path, capsys):
    page = _studio_page()
    page.redirect_url = "https://accounts.google.com/signin"

    async def broken_cookies():
        raise RuntimeError("CDP connection lost")

    page.cookies = broken_cookies

    def sign_in(message):
        page.url = GEMINI_URL
        return ""

    options = ClientOptions(debug=True, screenshot_dir=tmp_path)
    client = GeminiClient(options, store=store, page_factory=_factory(page), operator_prompt=sign_in)
    asyncio.run(client.initialize())

    assert client._initialized
    assert "Could not save session cookies" in capsys.readouterr().err
