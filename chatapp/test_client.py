import httpx
import pytest

from chatapp.client import ChatApiClient, ChatState, SEND_ERROR_TEXT, session_label, split_code_segments


@pytest.fixture
def api(client):
    return ChatApiClient(http=client)


class BrokenApi:
    """API double whose calls all fail like an unreachable server."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise httpx.ConnectError("connection refused")
        return fail


def test_load_selects_most_recent_session(api):
    older = api.create_session("older")
    newer = api.create_session("newer")
    api.send_message(newer["id"], "hi")

    state = ChatState(api)
    state.load()

    assert [s["id"] for s in state.sessions] == [newer["id"], older["id"]]
    assert state.selected_session_id == newer["id"]
    assert [m["role"] for m in state.messages] == ["user", "assistant"]


def test_load_with_no_sessions(api):
    state = ChatState(api)
    state.load()
    assert state.sessions == []
    assert state.selected_session_id is None


def test_create_chat_uses_default_name_and_prepends(api):
    state = ChatState(api)
    first = state.create_chat("   ")
    assert first["name"] == "Chat 1"
    second = state.create_chat("Ideas")
    assert [s["id"] for s in state.sessions] == [second["id"], first["id"]]
    assert state.selected_session_id == second["id"]
    assert state.messages == []


def test_create_chat_failure_sets_error():
    state = ChatState(BrokenApi())
    assert state.create_chat("x") is None
    assert state.pop_error() == "Failed to create chat"
    assert state.error is None


def test_delete_selected_chat_selects_next(api):
    state = ChatState(api)
    a = state.create_chat("a")
    b = state.create_chat("b")
    state.delete_chat(b["id"])
    assert [s["id"] for s in state.sessions] == [a["id"]]
    assert state.selected_session_id == a["id"]

    state.delete_chat(a["id"])
    assert state.sessions == []
    assert state.selected_session_id is None
    assert state.messages == []


def test_delete_other_chat_keeps_selection(api):
    state = ChatState(api)
    a = state.create_chat("a")
    b = state.create_chat("b")
    state.delete_chat(a["id"])
    assert state.selected_session_id == b["id"]


def test_send_replaces_thread_with_server_version(api):
    state = ChatState(api)
    state.create_chat("talk")
    state.send("  hello  ")
    assert [(m["role"], m["content"]) for m in state.messages] == [
        ("user", "hello"),
        ("assistant", "Hello from the model"),
    ]
    assert state.sending is False


def test_send_is_optimistic_and_guarded(api):
    state = ChatState(api)
    state.create_chat("talk")
    text = state.begin_send("hello")
    assert text == "hello"
    assert state.sending is True
    assert state.messages[-1]["content"] == "hello"
    # a second send while one is in flight is ignored
    assert state.begin_send("again") is None
    state.finish_send(text)
    assert state.sending is False
    assert len(state.messages) == 2


def test_send_ignores_blank_input(api):
    state = ChatState(api)
    state.create_chat("talk")
    state.send("   ")
    assert state.messages == []


def test_send_without_chat_sets_error(api):
    state = ChatState(api)
    state.send("hello")
    assert state.messages == []
    assert state.pop_error() == "Please create a chat first"


def test_send_failure_appends_error_message():
    state = ChatState(BrokenApi())
    state.selected_session_id = 1
    state.send("hello")
    assert [(m["role"], m["content"]) for m in state.messages] == [
        ("user", "hello"),
        ("assistant", SEND_ERROR_TEXT),
    ]
    assert state.sending is False


def test_split_code_segments():
    assert split_code_segments("plain") == [("text", "plain")]
    assert split_code_segments("Run:\n```pip install x```\ndone") == [
        ("text", "Run:\n"),
        ("code", "pip install x"),
        ("text", "\ndone"),
    ]


def test_session_label():
    assert session_label({"id": 4, "name": None}) == "Chat 4"
    assert session_label({"id": 4, "name": "Work"}) == "Work"


def test_non_json_response_is_handled():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>proxy page</html>"))
    api = ChatApiClient(http=httpx.Client(transport=transport, base_url="http://chat.test"))
    with pytest.raises(httpx.HTTPError):
        api.list_sessions()

    state = ChatState(api)
    state.load()
    assert state.sessions == []
    assert state.create_chat("x") is None
    assert state.pop_error() == "Failed to create chat"
