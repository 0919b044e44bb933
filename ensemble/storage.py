"""JSON file storage.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM; reads and writes go through plain helper
methods that load and dump JSON. A missing file reads as "no history".

Directory layout:

    {base}/
      agents.json                  ← list of Agent objects
      users/
        {user_id}/
          topics.json              ← list of TopicEngagement objects
          relationships.json       ← list of RelationshipEdge objects
          sessions/
            {session_id}/
              messages.json        ← append-only ChatMessage stream
              moods.json           ← {agent_id: MoodState}
              session_states.json  ← {agent_id: SessionState}
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from ensemble.models import (
    Agent,
    ChatMessage,
    MoodState,
    RelationshipEdge,
    SessionState,
    TopicEngagement,
)

TOPIC_LOAD_LIMIT = 100


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._users = base_path / "users"
        self._users.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _user_dir(self, user_id: str) -> Path:
        return self._users / user_id

    def _session_dir(self, user_id: str, session_id: str) -> Path:
        return self._user_dir(user_id) / "sessions" / session_id

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2))

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def save_agent(self, agent: Agent) -> None:
        """Upsert an agent by id."""
        agents = self.get_agents()
        for i, a in enumerate(agents):
            if a.id == agent.id:
                agents[i] = agent
                break
        else:
            agents.append(agent)
        self._write_json(self._base / "agents.json", [a.model_dump() for a in agents])

    def get_agents(self, ids: Iterable[str] | None = None) -> list[Agent]:
        """All agents, or those in `ids` in the order requested (unknown ids skipped)."""
        agents = [Agent.model_validate(a) for a in self._read_json(self._base / "agents.json", [])]
        if ids is None:
            return agents
        by_id = {a.id: a for a in agents}
        return [by_id[i] for i in ids if i in by_id]

    # ------------------------------------------------------------------
    # Messages (append-only)
    # ------------------------------------------------------------------

    def get_messages(self, user_id: str, session_id: str) -> list[ChatMessage]:
        path = self._session_dir(user_id, session_id) / "messages.json"
        return [ChatMessage.model_validate(m) for m in self._read_json(path, [])]

    def append_messages(
        self, user_id: str, session_id: str, messages: list[ChatMessage]
    ) -> None:
        existing = self.get_messages(user_id, session_id)
        existing.extend(messages)
        self._write_json(
            self._session_dir(user_id, session_id) / "messages.json",
            [m.model_dump(mode="json") for m in existing],
        )

    # ------------------------------------------------------------------
    # Moods
    # ------------------------------------------------------------------

    def get_moods(self, user_id: str, session_id: str) -> dict[str, MoodState]:
        path = self._session_dir(user_id, session_id) / "moods.json"
        return {k: MoodState.model_validate(v) for k, v in self._read_json(path, {}).items()}

    def get_mood(self, user_id: str, session_id: str, agent_id: str) -> MoodState | None:
        return self.get_moods(user_id, session_id).get(agent_id)

    def save_mood(self, user_id: str, mood: MoodState) -> None:
        moods = self.get_moods(user_id, mood.session_id)
        moods[mood.agent_id] = mood
        self._write_json(
            self._session_dir(user_id, mood.session_id) / "moods.json",
            {k: v.model_dump() for k, v in moods.items()},
        )

    # ------------------------------------------------------------------
    # Session states
    # ------------------------------------------------------------------

    def get_session_states(self, user_id: str, session_id: str) -> dict[str, SessionState]:
        path = self._session_dir(user_id, session_id) / "session_states.json"
        return {k: SessionState.model_validate(v) for k, v in self._read_json(path, {}).items()}

    def get_session_state(
        self, user_id: str, session_id: str, agent_id: str
    ) -> SessionState | None:
        return self.get_session_states(user_id, session_id).get(agent_id)

    def save_session_state(self, user_id: str, state: SessionState) -> None:
        states = self.get_session_states(user_id, state.session_id)
        states[state.agent_id] = state
        self._write_json(
            self._session_dir(user_id, state.session_id) / "session_states.json",
            {k: v.model_dump(mode="json") for k, v in states.items()},
        )

    # ------------------------------------------------------------------
    # Topic engagement
    # ------------------------------------------------------------------

    def _all_topics(self, user_id: str) -> list[TopicEngagement]:
        path = self._user_dir(user_id) / "topics.json"
        return [TopicEngagement.model_validate(t) for t in self._read_json(path, [])]

    def get_topic_engagements(
        self,
        user_id: str,
        agent_ids: Iterable[str] | None = None,
        limit: int = TOPIC_LOAD_LIMIT,
    ) -> list[TopicEngagement]:
        """Most recently discussed topics first, capped at `limit`."""
        topics = self._all_topics(user_id)
        if agent_ids is not None:
            wanted = set(agent_ids)
            topics = [t for t in topics if t.agent_id in wanted]
        topics.sort(key=lambda t: t.last_discussed_at, reverse=True)
        return topics[:limit]

    def get_topic_engagement(
        self, user_id: str, agent_id: str, keyword: str
    ) -> TopicEngagement | None:
        for t in self._all_topics(user_id):
            if t.agent_id == agent_id and t.keyword == keyword:
                return t
        return None

    def save_topic_engagement(self, engagement: TopicEngagement) -> None:
        """Upsert by (agent_id, keyword)."""
        topics = self._all_topics(engagement.user_id)
        for i, t in enumerate(topics):
            if t.agent_id == engagement.agent_id and t.keyword == engagement.keyword:
                topics[i] = engagement
                break
        else:
            topics.append(engagement)
        self._write_json(
            self._user_dir(engagement.user_id) / "topics.json",
            [t.model_dump(mode="json") for t in topics],
        )

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def get_relationships(
        self, user_id: str, agent_ids: Iterable[str] | None = None
    ) -> list[RelationshipEdge]:
        """Edges touching any of `agent_ids` on either end."""
        path = self._user_dir(user_id) / "relationships.json"
        edges = [RelationshipEdge.model_validate(r) for r in self._read_json(path, [])]
        if agent_ids is None:
            return edges
        wanted = set(agent_ids)
        return [e for e in edges if e.agent_id in wanted or e.related_id in wanted]

    def save_relationship(self, edge: RelationshipEdge) -> None:
        """Upsert by the unordered pair (agent_id, related_id)."""
        edges = self.get_relationships(edge.user_id)
        pair = {edge.agent_id, edge.related_id}
        for i, e in enumerate(edges):
            if {e.agent_id, e.related_id} == pair:
                edges[i] = edge
                break
        else:
            edges.append(edge)
        self._write_json(
            self._user_dir(edge.user_id) / "relationships.json",
            [e.model_dump() for e in edges],
        )
