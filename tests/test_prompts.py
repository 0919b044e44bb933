import pytest

from ensemble.models import Agent, ChatMessage
from ensemble.mood import mood_prompt
from ensemble.prompts import PromptError, build_conversation, build_system_prompt, render_prompt

MAYA = Agent(id="maya", name="Maya", personality="Art student who can't sit still.")
NAMES = {"maya": "Maya", "finn": "Finn"}


# ── render_prompt ────────────────────────────────────────────


def test_render_simple_variable():
    assert render_prompt("Hello {{name}}!", {"name": "World"}) == "Hello World!"


def test_render_missing_variable():
    assert render_prompt("Hello {{name}}!", {}) == "Hello !"


def test_render_triple_stash_does_not_escape():
    assert render_prompt("{{{line}}}", {"line": "<b>don't</b>"}) == "<b>don't</b>"


def test_render_invalid_template():
    with pytest.raises(PromptError):
        render_prompt("{{> missing_partial}}", {})


# ── build_system_prompt ──────────────────────────────────────


def test_system_prompt_opens_with_name():
    prompt = build_system_prompt(MAYA)
    assert prompt.splitlines()[0] == "You are Maya."
    assert "Art student who can't sit still." in prompt
    assert "Stay in character at all times" in prompt


def test_system_prompt_omits_empty_persona_and_scene():
    prompt = build_system_prompt(MAYA)
    assert "USER PERSONA" not in prompt
    assert "CURRENT SCENE" not in prompt


def test_system_prompt_includes_persona_and_scene():
    prompt = build_system_prompt(MAYA, persona="A night-shift nurse.", scene="Rooftop party.")
    assert "USER PERSONA:\nA night-shift nurse." in prompt
    assert "CURRENT SCENE:\nRooftop party." in prompt


def test_system_prompt_appends_mood_hint():
    hint = mood_prompt("excited", 0.9, MAYA)
    prompt = build_system_prompt(MAYA, hint)
    assert prompt.endswith(hint)
    assert "[CURRENT EMOTIONAL STATE - DO NOT MENTION THIS EXPLICITLY]" in prompt


def test_system_prompt_custom_template():
    assert build_system_prompt(MAYA, template="{{agent.name}}|{{scene}}", scene="Bar") == "Maya|Bar"


# ── build_conversation ───────────────────────────────────────


def test_conversation_roles_and_names():
    history = [
        ChatMessage(speaker="user", content="hey all"),
        ChatMessage(speaker="finn", content="yo"),
    ]
    messages = build_conversation("SYS", history, NAMES, "what's new?")
    assert messages == [
        {"role": "system", "content": "SYS"},
        {"role": "user", "content": "hey all"},
        {"role": "assistant", "content": "[Finn]: yo"},
        {"role": "user", "content": "what's new?"},
    ]


def test_conversation_unknown_speaker_uses_id():
    messages = build_conversation("SYS", [ChatMessage(speaker="ghost", content="boo")], NAMES)
    assert messages[-1]["content"] == "[ghost]: boo"


def test_conversation_limits_history():
    history = [ChatMessage(speaker="user", content=str(i)) for i in range(15)]
    messages = build_conversation("SYS", history, NAMES, limit=3)
    assert [m["content"] for m in messages[1:]] == ["12", "13", "14"]


def test_conversation_zero_limit_keeps_system_and_new_message():
    history = [ChatMessage(speaker="user", content="old")]
    messages = build_conversation("SYS", history, NAMES, "new", limit=0)
    assert [m["content"] for m in messages] == ["SYS", "new"]
