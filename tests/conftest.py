"""Shared fixtures: a fake chat-completions client standing in for OpenAI."""

from types import SimpleNamespace

import pytest

from studiora.config import Settings
from studiora.llm_client import LLMClient


class FakeCompletions:
    """Mimics ``client.chat.completions``; replies come from a responder function."""

    def __init__(self, responder):
        self.responder = responder
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.responder(kwargs["messages"][-1]["content"])
        if isinstance(reply, Exception):
            raise reply
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])

    def prompts(self):
        return [call["messages"][-1]["content"] for call in self.calls]


class FakeOpenAI:
    def __init__(self, responder):
        self.completions = FakeCompletions(responder)
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture
def make_llm():
    """Build an LLMClient backed by a fake client.

    ``replies`` is either a function (prompt -> reply) or a list of replies
    returned in order. A reply that is an exception is raised instead.
    """
    def factory(replies, **settings_kwargs):
        if callable(replies):
            responder = replies
        else:
            queue = list(replies)
            responder = lambda prompt: queue.pop(0) if queue else "{}"

        settings = Settings(openai_api_key="sk-test", **settings_kwargs)
        fake = FakeOpenAI(responder)
        sleeps = []
        llm = LLMClient(settings, client=fake, sleep=sleeps.append)
        return SimpleNamespace(llm=llm, settings=settings, completions=fake.completions, sleeps=sleeps)

    return factory
