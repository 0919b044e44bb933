from pathlib import Path

import pytest

from ensemble.models import Agent
from ensemble.storage import Storage


class StubLLM:
    """Scripted LLM: replies by agent name found in the system prompt.

    `replies` maps an agent name to the text it should say, or to an
    exception instance to raise. Every call is recorded in `calls`.
    """

    def __init__(self, replies: dict[str, str | Exception] | None = None) -> None:
        self.replies = replies or {}
        self.calls: list[dict] = []

    async def __call__(self, stage, messages, *, max_tokens, temperature):
        system = messages[0]["content"]
        name = system.split("\n", 1)[0].removeprefix("You are ").rstrip(".")
        self.calls.append({
            "stage": stage, "name": name, "messages": messages,
            "max_tokens": max_tokens, "temperature": temperature,
        })
        reply = self.replies.get(name, f"{name} says hi.")
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def storage(tmp_path: Path) -> Storage:
    return Storage(tmp_path / "data")


@pytest.fixture
def stub_llm() -> StubLLM:
    return StubLLM()


@pytest.fixture
def cast(storage: Storage) -> list[Agent]:
    """Three agents saved to storage; nobody is directly addressable by accident."""
    agents = [
        Agent(id="maya", name="Maya", personality="Art student.", temperature=0.9),
        Agent(id="bob", name="Bob", personality="Gruff mechanic.", temperature=0.3),
        Agent(id="finn", name="Finn", personality="Musician.", temperature=0.5),
    ]
    for a in agents:
        storage.save_agent(a)
    return agents


@pytest.fixture
def scripted_llm() -> type[StubLLM]:
    """The StubLLM class, for tests that script per-agent replies."""
    return StubLLM
