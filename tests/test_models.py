"""Tests for ensemble.models."""

import pytest
from pydantic import ValidationError

from ensemble.models import (
    Agent,
    ChatMessage,
    MoodState,
    ScoredAgent,
    SessionState,
    SpeakingQueue,
    Trigger,
)


def _scored(agent_id: str, score: float) -> ScoredAgent:
    return ScoredAgent(
        agent=Agent(id=agent_id, name=agent_id.title()),
        mood_state=MoodState(agent_id=agent_id, session_id="s1"),
        session_state=SessionState(agent_id=agent_id, session_id="s1"),
        score=score,
    )


class TestAgent:
    def test_required_fields(self) -> None:
        a = Agent(id="maya", name="Maya")
        assert a.id == "maya"
        assert a.personality == ""
        assert a.max_response_tokens == 150

    def test_volatility_defaults_when_temperature_unset(self) -> None:
        assert Agent(id="x", name="X").volatility == 0.8

    def test_zero_temperature_is_kept(self) -> None:
        assert Agent(id="x", name="X", temperature=0.0).volatility == 0.0

    def test_temperature_out_of_range_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Agent(id="x", name="X", temperature=1.5)

    @pytest.mark.parametrize("fields", [{"id": "x", "name": ""}, {"id": "", "name": "X"}])
    def test_blank_id_or_name_rejected(self, fields: dict) -> None:
        with pytest.raises(ValidationError):
            Agent(**fields)

    def test_serialise_roundtrip(self) -> None:
        a = Agent(id="zoe", name="Zoe", personality="Sarcastic.", temperature=0.7)
        assert Agent.model_validate(a.model_dump()) == a


class TestMoodState:
    def test_defaults_to_neutral(self) -> None:
        m = MoodState(agent_id="x", session_id="s1")
        assert m.mood == "neutral"
        assert m.intensity == 0.5

    def test_intensity_clamped_high(self) -> None:
        assert MoodState(agent_id="x", session_id="s1", intensity=1.7).intensity == 1.0

    def test_intensity_clamped_low(self) -> None:
        assert MoodState(agent_id="x", session_id="s1", intensity=-0.2).intensity == 0.0

    def test_unknown_mood_rejected(self) -> None:
        with pytest.raises(ValidationError):
            MoodState(agent_id="x", session_id="s1", mood="furious")

    def test_serialise_roundtrip_keeps_precision(self) -> None:
        m = MoodState(agent_id="x", session_id="s1", mood="content", intensity=0.6216)
        restored = MoodState.model_validate_json(m.model_dump_json())
        assert restored == m


class TestTrigger:
    def test_match_count(self) -> None:
        t = Trigger(type="joke", matched_keywords=["lol", "haha"], strength=0.4)
        assert t.match_count == 2

    def test_invalid_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Trigger(type="sarcasm", matched_keywords=["sure"], strength=0.2)


class TestChatMessage:
    def test_mood_defaults_to_none(self) -> None:
        m = ChatMessage(speaker="user", content="hi")
        assert m.mood is None
        assert m.is_primary is False

    def test_json_roundtrip(self) -> None:
        m = ChatMessage(speaker="bob", content="Hm.", mood="annoyed", mood_intensity=0.8)
        assert ChatMessage.model_validate_json(m.model_dump_json()) == m


class TestSpeakingQueue:
    def test_ranked_lists_primary_then_secondary_then_silent(self) -> None:
        q = SpeakingQueue(
            primary=_scored("a", 0.9),
            secondary=[_scored("b", 0.7)],
            silent=[_scored("c", 0.5), _scored("d", 0.1)],
        )
        assert [s.agent.id for s in q.ranked] == ["a", "b", "c", "d"]

    def test_summary_uses_names(self) -> None:
        q = SpeakingQueue(primary=_scored("a", 0.9), silent=[_scored("c", 0.5)])
        assert q.summary() == {"primary": "A", "secondary": [], "silent": ["C"]}
