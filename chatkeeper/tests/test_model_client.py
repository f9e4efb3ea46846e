from types import SimpleNamespace

import openai
import pytest

from chatkeeper.llm.model_client import ChatModelClient
from chatkeeper.memory.models import ChatMessage, Role
from chatkeeper.utils.errors import ModelError


class StubCompletions:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error:
            raise self.error
        return self.response


def _client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def _response(content, reasoning=None, model="gpt-test"):
    message = SimpleNamespace(content=content, reasoning_content=reasoning)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], model=model)


def test_generate_returns_model_turn():
    completions = StubCompletions(_response("Paris"))
    turn = ChatModelClient(_client(completions), model="gpt-test").generate([ChatMessage.user("Capital of France?")])

    assert turn.role is Role.MODEL
    assert [p.text for p in turn.parts] == ["Paris"]
    assert turn.model == "gpt-test"
    assert turn.has_thoughts is False
    assert completions.kwargs["model"] == "gpt-test"
    assert completions.kwargs["messages"][-1] == {"role": "user", "content": "Capital of France?"}


def test_reasoning_becomes_thought_part():
    completions = StubCompletions(_response("4", reasoning="2 + 2"))
    turn = ChatModelClient(_client(completions), model="m").generate([ChatMessage.user("2+2?")])

    assert turn.parts[0].thought is True and turn.parts[0].text == "2 + 2"
    assert turn.parts[1].text == "4"
    assert turn.thoughts == "2 + 2"


def test_empty_choices():
    completions = StubCompletions(SimpleNamespace(choices=[], model="m"))
    with pytest.raises(ModelError):
        ChatModelClient(_client(completions), model="m").generate([ChatMessage.user("hi")])


def test_empty_content():
    completions = StubCompletions(_response(None))
    with pytest.raises(ModelError):
        ChatModelClient(_client(completions), model="m").generate([ChatMessage.user("hi")])


def test_api_error_wrapped():
    completions = StubCompletions(error=openai.OpenAIError("boom"))
    with pytest.raises(ModelError):
        ChatModelClient(_client(completions), model="m").generate([ChatMessage.user("hi")])
