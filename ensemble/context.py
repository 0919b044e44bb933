"""Per-turn scoring context.

Every "no history" default used by the speaking queue is resolved here,
so scoring never has to check for missing records itself:

  session state   → messages_this_session=0, never spoke
  mood            → neutral at 0.5
  topic history   → empty list
  relationship    → None
"""

from __future__ import annotations

from collections.abc import Mapping

from pydantic import BaseModel, Field

from ensemble.models import (
    ChatMessage,
    MoodState,
    RelationshipEdge,
    SessionState,
    TopicEngagement,
)


class TurnContext(BaseModel):
    """What the speaking queue knows about the conversation this turn."""

    user_message: str
    history: list[ChatMessage] = Field(default_factory=list)
    topic_engagements: list[TopicEngagement] = Field(default_factory=list)
    relationships: list[RelationshipEdge] = Field(default_factory=list)

    @property
    def total_messages(self) -> int:
        return len(self.history)

    @property
    def last_speaker(self) -> str | None:
        if not self.history:
            return None
        return self.history[-1].speaker

    def engagements_for(self, agent_id: str) -> list[TopicEngagement]:
        return [te for te in self.topic_engagements if te.agent_id == agent_id]

    def relationship_between(self, a: str, b: str | None) -> RelationshipEdge | None:
        if b is None:
            return None
        for edge in self.relationships:
            if (edge.agent_id, edge.related_id) in ((a, b), (b, a)):
                return edge
        return None

    def messages_since_spoke(self, agent_id: str, state: SessionState) -> int | None:
        """Messages posted since the agent last spoke, or None if it never has.

        Counted from the history when the agent's last line is in it. When the
        history is truncated past that line, fall back to the messages the
        agent did not author.
        """
        if state.last_spoke_at is None or self.total_messages == 0:
            return None
        for offset, msg in enumerate(reversed(self.history)):
            if msg.speaker == agent_id:
                return offset
        return max(self.total_messages - state.messages_this_session, 0)


def session_state_for(
    states: Mapping[str, SessionState], agent_id: str, session_id: str
) -> SessionState:
    state = states.get(agent_id)
    if state is None:
        return SessionState(agent_id=agent_id, session_id=session_id)
    return state


def mood_for(
    moods: Mapping[str, MoodState], agent_id: str, session_id: str
) -> MoodState:
    mood = moods.get(agent_id)
    if mood is None:
        return MoodState(agent_id=agent_id, session_id=session_id)
    return mood
