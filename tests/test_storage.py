"""Tests for ensemble.storage — JSON file persistence."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from ensemble.models import (
    Agent,
    ChatMessage,
    MoodState,
    RelationshipEdge,
    SessionState,
    TopicEngagement,
)
from ensemble.mood import detect_triggers, update_mood
from ensemble.storage import Storage

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestAgents:
    def test_empty(self, storage: Storage) -> None:
        assert storage.get_agents() == []

    def test_upsert(self, storage: Storage) -> None:
        storage.save_agent(Agent(id="maya", name="Maya"))
        storage.save_agent(Agent(id="maya", name="Maya", temperature=0.9))
        agents = storage.get_agents()
        assert len(agents) == 1
        assert agents[0].temperature == 0.9

    def test_requested_order_and_unknown_skipped(self, storage: Storage) -> None:
        for agent_id in ("maya", "finn", "zoe"):
            storage.save_agent(Agent(id=agent_id, name=agent_id.title()))
        assert [a.id for a in storage.get_agents(["zoe", "ghost", "maya"])] == ["zoe", "maya"]


class TestMessages:
    def test_append_only(self, storage: Storage) -> None:
        storage.append_messages("u1", "s1", [ChatMessage(speaker="user", content="hi")])
        storage.append_messages("u1", "s1", [ChatMessage(speaker="maya", content="hey", mood="content")])
        msgs = storage.get_messages("u1", "s1")
        assert [m.speaker for m in msgs] == ["user", "maya"]
        assert msgs[1].mood == "content"

    def test_scoped_by_user_and_session(self, storage: Storage) -> None:
        storage.append_messages("u1", "s1", [ChatMessage(speaker="user", content="hi")])
        assert storage.get_messages("u1", "s2") == []
        assert storage.get_messages("u2", "s1") == []


class TestMoods:
    def test_missing_is_none(self, storage: Storage) -> None:
        assert storage.get_mood("u1", "s1", "maya") is None
        assert storage.get_moods("u1", "s1") == {}

    def test_roundtrip_reproduces_state(self, storage: Storage) -> None:
        state = update_mood(
            MoodState(agent_id="maya", session_id="s1", mood="annoyed", intensity=0.5),
            detect_triggers("lol"), 0.8,
        )
        storage.save_mood("u1", state)
        loaded = storage.get_mood("u1", "s1", "maya")
        assert loaded.mood == state.mood
        assert loaded.intensity == pytest.approx(state.intensity, abs=1e-6)
        assert loaded == state

    def test_save_replaces_per_agent(self, storage: Storage) -> None:
        storage.save_mood("u1", MoodState(agent_id="maya", session_id="s1", mood="sad", intensity=0.7))
        storage.save_mood("u1", MoodState(agent_id="finn", session_id="s1"))
        storage.save_mood("u1", MoodState(agent_id="maya", session_id="s1", mood="content", intensity=0.6))
        moods = storage.get_moods("u1", "s1")
        assert moods["maya"].mood == "content"
        assert moods["finn"].mood == "neutral"


class TestSessionStates:
    def test_roundtrip_with_timestamp(self, storage: Storage) -> None:
        state = SessionState(agent_id="maya", session_id="s1", messages_this_session=3, last_spoke_at=T0)
        storage.save_session_state("u1", state)
        assert storage.get_session_state("u1", "s1", "maya") == state

    def test_missing_is_none(self, storage: Storage) -> None:
        assert storage.get_session_state("u1", "s1", "maya") is None


class TestTopicEngagements:
    def test_most_recent_first_and_limited(self, storage: Storage) -> None:
        for i in range(5):
            storage.save_topic_engagement(TopicEngagement(
                agent_id="maya", user_id="u1", keyword=f"topic{i}",
                last_discussed_at=T0 + timedelta(hours=i),
            ))
        topics = storage.get_topic_engagements("u1", limit=3)
        assert [t.keyword for t in topics] == ["topic4", "topic3", "topic2"]

    def test_filter_by_agent(self, storage: Storage) -> None:
        storage.save_topic_engagement(TopicEngagement(agent_id="maya", user_id="u1", keyword="art"))
        storage.save_topic_engagement(TopicEngagement(agent_id="finn", user_id="u1", keyword="jazz"))
        assert [t.keyword for t in storage.get_topic_engagements("u1", ["finn"])] == ["jazz"]

    def test_upsert_by_agent_and_keyword(self, storage: Storage) -> None:
        storage.save_topic_engagement(TopicEngagement(agent_id="maya", user_id="u1", keyword="art"))
        storage.save_topic_engagement(
            TopicEngagement(agent_id="maya", user_id="u1", keyword="art", engagement_count=4)
        )
        assert len(storage.get_topic_engagements("u1")) == 1
        assert storage.get_topic_engagement("u1", "maya", "art").engagement_count == 4


class TestRelationships:
    def test_upsert_unordered_pair(self, storage: Storage) -> None:
        storage.save_relationship(RelationshipEdge(agent_id="maya", related_id="finn", user_id="u1", strength=0.3))
        storage.save_relationship(RelationshipEdge(agent_id="finn", related_id="maya", user_id="u1", strength=0.9))
        edges = storage.get_relationships("u1")
        assert len(edges) == 1
        assert edges[0].strength == 0.9

    def test_filter_matches_either_end(self, storage: Storage) -> None:
        storage.save_relationship(RelationshipEdge(agent_id="maya", related_id="finn", user_id="u1"))
        storage.save_relationship(RelationshipEdge(agent_id="alex", related_id="zoe", user_id="u1"))
        assert len(storage.get_relationships("u1", ["finn"])) == 1
        assert storage.get_relationships("u1", ["nobody"]) == []


def test_layout_on_disk(tmp_path: Path) -> None:
    storage = Storage(tmp_path)
    storage.save_mood("u1", MoodState(agent_id="maya", session_id="s1", intensity=0.75))
    path = tmp_path / "users" / "u1" / "sessions" / "s1" / "moods.json"
    assert json.loads(path.read_text())["maya"]["intensity"] == 0.75
