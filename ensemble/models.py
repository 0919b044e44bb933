"""Core domain models.

The mood engine, speaking queue, storage and orchestrator all operate on
these types. Pydantic is used for validation and serialisation at every
data boundary.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal, get_args

from pydantic import BaseModel, Field, field_validator

Mood = Literal["neutral", "excited", "content", "annoyed", "defensive", "sad"]

TriggerType = Literal[
    "disagreement",
    "agreement",
    "compliment",
    "joke",
    "criticism",
    "sadness",
]

MOODS: tuple[Mood, ...] = get_args(Mood)
TRIGGER_TYPES: tuple[TriggerType, ...] = get_args(TriggerType)

DEFAULT_TEMPERATURE = 0.8
DEFAULT_MAX_RESPONSE_TOKENS = 150
NEUTRAL_INTENSITY = 0.5


def _now() -> datetime:
    return datetime.now(timezone.utc)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class Agent(BaseModel):
    """A conversational character taking part in a group chat."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    personality: str = ""
    temperature: float | None = Field(default=None, ge=0.0, le=1.0)
    max_response_tokens: int = Field(default=DEFAULT_MAX_RESPONSE_TOKENS, gt=0)

    @property
    def volatility(self) -> float:
        """Temperature, or the default when the agent leaves it unset."""
        if self.temperature is None:
            return DEFAULT_TEMPERATURE
        return self.temperature


class MoodState(BaseModel):
    """Emotional state of one agent within one session."""

    agent_id: str
    session_id: str
    mood: Mood = "neutral"
    intensity: float = NEUTRAL_INTENSITY

    @field_validator("intensity")
    @classmethod
    def _clamp_intensity(cls, v: float) -> float:
        return clamp(v)


class Trigger(BaseModel):
    """A linguistic cue detected in a user message. Never persisted."""

    type: TriggerType
    matched_keywords: list[str]
    strength: float

    @property
    def match_count(self) -> int:
        return len(self.matched_keywords)


class SessionState(BaseModel):
    """Speaking history of one agent within one session."""

    agent_id: str
    session_id: str
    messages_this_session: int = 0
    last_spoke_at: datetime | None = None


class TopicEngagement(BaseModel):
    """How often an agent has discussed a keyword with a given user."""

    agent_id: str
    user_id: str
    keyword: str
    engagement_count: int = 1
    last_discussed_at: datetime = Field(default_factory=_now)


class RelationshipEdge(BaseModel):
    """Closeness between two agents (or an agent and the user).

    Lookup treats the edge as undirected.
    """

    agent_id: str
    related_id: str
    user_id: str
    strength: float = Field(default=0.5, ge=0.0, le=1.0)


class ChatMessage(BaseModel):
    """A single entry in a session's append-only message stream."""

    speaker: str  # "user" | <agent_id>
    content: str
    mood: Mood | None = None  # present on agent messages only
    mood_intensity: float | None = None
    is_primary: bool = False
    created_at: datetime = Field(default_factory=_now)


class ScoredAgent(BaseModel):
    agent: Agent
    mood_state: MoodState
    session_state: SessionState
    score: float


class SpeakingQueue(BaseModel):
    """Who speaks this turn: one primary, ordered secondaries, the rest silent."""

    primary: ScoredAgent
    secondary: list[ScoredAgent] = Field(default_factory=list)
    silent: list[ScoredAgent] = Field(default_factory=list)

    @property
    def ranked(self) -> list[ScoredAgent]:
        """Every scored agent, highest score first."""
        return [self.primary, *self.secondary, *self.silent]

    def summary(self) -> dict[str, object]:
        return {
            "primary": self.primary.agent.name,
            "secondary": [s.agent.name for s in self.secondary],
            "silent": [s.agent.name for s in self.silent],
        }


class AgentResponse(BaseModel):
    """One agent's contribution to a turn."""

    agent_id: str
    agent_name: str
    content: str
    delay_ms: int = 0
    is_primary: bool = False
    mood: Mood | None = None
    mood_intensity: float | None = None
    error: bool = False
    created_at: datetime = Field(default_factory=_now)


class TurnResult(BaseModel):
    responses: list[AgentResponse]
    queue: SpeakingQueue
    moods: list[MoodState]
