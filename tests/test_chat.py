import io
import json
from unittest import mock

import pytest

from alacritty_chat.chat import (
    ChatMessage,
    ChatPanel,
    ChatRole,
    LLMError,
    LLMService,
    MockLLMService,
    OpenAIService,
    service_from_environment,
    split_code_blocks,
)


class FailingService(LLMService):
    def send_message(self, messages):
        raise LLMError("boom")


class RecordingService(LLMService):
    def __init__(self):
        self.seen = []

    def send_message(self, messages):
        self.seen.append(list(messages))
        return "reply"


def test_constructors_set_roles():
    assert ChatMessage.user("hi").role == "user"
    assert ChatMessage.assistant("hi").role == "assistant"
    assert ChatMessage.system("hi").role == "system"
    assert ChatRole.USER.value == "user"


def test_role_predicates():
    assert ChatMessage.user("x").is_user()
    assert not ChatMessage.user("x").is_assistant()
    assert ChatMessage.assistant("x").is_assistant()
    assert not ChatMessage.system("x").is_user()


def test_dict_round_trip():
    message = ChatMessage.assistant("こんにちは")
    assert ChatMessage.from_dict(message.to_dict()) == message


def test_from_dict_defaults_missing_fields():
    assert ChatMessage.from_dict({}) == ChatMessage("", "")
    assert ChatMessage.from_dict({"content": "c"}).role == ""


def test_from_dict_rejects_bad_types():
    with pytest.raises(ValueError):
        ChatMessage.from_dict({"role": 3})
    with pytest.raises(ValueError):
        ChatMessage.from_dict(["role"])


def test_build_request_shape():
    service = OpenAIService("placeholder", "gpt-3.5-turbo")
    request = service.build_request([ChatMessage.user("q")])
    assert request == {
        "model": "gpt-3.5-turbo",
        "messages": [{"role": "user", "content": "q"}],
        "temperature": 0.7,
    }


def test_parse_response_takes_first_choice():
    service = OpenAIService("placeholder")
    payload = {
        "choices": [
            {"message": {"role": "assistant", "content": "first"}},
            {"message": {"role": "assistant", "content": "second"}},
        ]
    }
    assert service.parse_response(payload) == "first"


def test_parse_response_empty_choices():
    service = OpenAIService("placeholder")
    with pytest.raises(LLMError, match="選択肢がありません"):
        service.parse_response({"choices": []})
    with pytest.raises(LLMError, match="選択肢がありません"):
        service.parse_response({})


def test_parse_response_malformed():
    service = OpenAIService("placeholder")
    with pytest.raises(LLMError, match="JSONのパースに失敗"):
        service.parse_response({"choices": "nope"})


def test_openai_send_message_over_http():
    body = json.dumps({"choices": [{"message": {"role": "assistant", "content": "ok"}}]})
    fake = mock.MagicMock()
    fake.__enter__.return_value = io.BytesIO(body.encode())
    with mock.patch("urllib.request.urlopen", return_value=fake) as urlopen:
        result = OpenAIService("placeholder").send_message([ChatMessage.user("q")])
    assert result == "ok"
    request = urlopen.call_args.args[0]
    assert request.get_header("Authorization") == "Bearer placeholder"
    assert json.loads(request.data)["messages"] == [{"role": "user", "content": "q"}]


def test_openai_send_message_bad_json():
    fake = mock.MagicMock()
    fake.__enter__.return_value = io.BytesIO(b"not json")
    with mock.patch("urllib.request.urlopen", return_value=fake):
        with pytest.raises(LLMError, match="JSONのパースに失敗"):
            OpenAIService("placeholder").send_message([])


def test_mock_service_echoes_last_user_message():
    service = MockLLMService(delay=0)
    history = [ChatMessage.user("one"), ChatMessage.assistant("a"), ChatMessage.user("two")]
    reply = service.send_message(history)
    assert "「two」" in reply
    assert "OPENAI_API_KEY" in reply


def test_mock_service_without_user_message():
    with pytest.raises(LLMError, match="ユーザーメッセージがありません"):
        MockLLMService(delay=0).send_message([ChatMessage.system("s")])


def test_service_from_environment():
    service = service_from_environment({"OPENAI_API_KEY": "placeholder"})
    assert isinstance(service, OpenAIService)
    assert service.model == "gpt-3.5-turbo"
    assert isinstance(service_from_environment({"OPENAI_API_KEY": ""}), MockLLMService)
    assert isinstance(service_from_environment({}), MockLLMService)


def test_split_code_blocks():
    content = "intro\n```python\nx = 1\n  ```\noutro\n"
    assert split_code_blocks(content) == [
        ("text", "intro"),
        ("fence", "```"),
        ("code", "x = 1"),
        ("fence", "```"),
        ("text", "outro"),
    ]


def test_split_code_blocks_empty():
    assert split_code_blocks("") == []


def test_panel_ignores_blank_input():
    panel = ChatPanel(MockLLMService(delay=0))
    panel.input_buffer = "   \n"
    assert panel.send_message() is False
    assert panel.history == []


def test_panel_round_trip():
    service = RecordingService()
    panel = ChatPanel(service)
    panel.input_buffer = "hello"
    assert panel.send_message() is True
    assert panel.input_buffer == ""
    assert panel.awaiting_response
    reply = panel.wait_for_response(timeout=5)
    assert reply == ChatMessage.assistant("reply")
    assert panel.history == [ChatMessage.user("hello"), ChatMessage.assistant("reply")]
    assert not panel.awaiting_response
    assert service.seen == [[ChatMessage.user("hello")]]
    assert panel.poll_response() is None


def test_panel_refuses_while_awaiting():
    panel = ChatPanel(MockLLMService(delay=0))
    panel.input_buffer = "a"
    panel.send_message()
    panel.input_buffer = "b"
    assert panel.send_message() is False
    assert panel.input_buffer == "b"
    panel.wait_for_response(timeout=5)
    assert [m.content for m in panel.history if m.is_user()] == ["a"]


def test_panel_reports_errors_as_system_message():
    panel = ChatPanel(FailingService())
    panel.input_buffer = "q"
    panel.send_message()
    reply = panel.wait_for_response(timeout=5)
    assert reply == ChatMessage.system("エラー: boom")
    assert not panel.awaiting_response


def test_panel_poll_eventually_returns_reply():
    panel = ChatPanel(MockLLMService(delay=0))
    panel.input_buffer = "ping"
    panel.send_message()
    panel._replies_result = panel.wait_for_response(timeout=5)
    assert panel._replies_result.is_assistant()
    assert "「ping」" in panel._replies_result.content
    assert panel.wait_for_response(timeout=0) is None