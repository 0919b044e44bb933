"""Speaking queue — decides who responds to a user message and in what order.

Score (0–1, clamped) is the sum of:
  volatility      temperature × 0.45                      0 .. 0.45
  mood            |speaking_modifier(mood)| × 0.3          0 .. 0.3
  topic           relevance × 0.3                          0 .. 0.3
                    no history at all      → 0.3
                    history, no match      → 0.2
                    matches                → min(Σ count × 0.1, 1.0)
  relationship    strength(agent, last speaker) × 0.2      0 .. 0.2
  recency         spoke 0 / 1 / 2 messages ago            -0.3 / -0.2 / -0.1
  direct address  name used as a form of address           +0.5

Partition: highest score is primary (always, even if low); other agents
scoring strictly above 0.6 are secondary, in score order; the rest are
silent. Sorting is stable, so ties keep the input order.

The write-back helpers record that an agent spoke. They go through any
store matching SessionStore (see ensemble.storage.Storage).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Protocol

from ensemble.context import TurnContext, mood_for, session_state_for
from ensemble.models import (
    Agent,
    MoodState,
    ScoredAgent,
    SessionState,
    SpeakingQueue,
    TopicEngagement,
    clamp,
)
from ensemble.mood import speaking_modifier

logger = logging.getLogger(__name__)

VOLATILITY_WEIGHT = 0.45
MOOD_WEIGHT = 0.3
TOPIC_WEIGHT = 0.3
RELATIONSHIP_WEIGHT = 0.2
ADDRESS_BONUS = 0.5
SECONDARY_THRESHOLD = 0.6

TOPIC_NO_HISTORY = 0.3
TOPIC_NO_MATCH = 0.2
TOPIC_PER_ENGAGEMENT = 0.1

MAX_KEYWORDS = 5
MIN_KEYWORD_LENGTH = 4

# index = messages since the agent last spoke
RECENCY_PENALTIES = (-0.3, -0.2, -0.1)

STOPWORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "as", "is", "was", "are", "were", "been",
    "be", "have", "has", "had", "do", "does", "did", "will", "would",
    "could", "should", "may", "might", "can", "what", "when", "where",
    "who", "why", "how", "this", "that", "these", "those", "i", "you",
    "he", "she", "it", "we", "they", "my", "your", "his", "her", "its",
    "our", "their", "me", "him", "us", "them",
})

_PUNCTUATION = re.compile(r"[^\w\s]")


class SessionStore(Protocol):
    def get_session_state(
        self, user_id: str, session_id: str, agent_id: str
    ) -> SessionState | None: ...

    def save_session_state(self, user_id: str, state: SessionState) -> None: ...

    def get_topic_engagement(
        self, user_id: str, agent_id: str, keyword: str
    ) -> TopicEngagement | None: ...

    def save_topic_engagement(self, engagement: TopicEngagement) -> None: ...


# ---------------------------------------------------------------------------
# Scoring terms
# ---------------------------------------------------------------------------

def extract_keywords(message: str) -> list[str]:
    """Up to five distinct content words (longer than three letters, not stopwords)."""
    words = _PUNCTUATION.sub("", message.lower()).split()
    keywords = [w for w in words if len(w) >= MIN_KEYWORD_LENGTH and w not in STOPWORDS]
    return list(dict.fromkeys(keywords))[:MAX_KEYWORDS]


def topic_relevance(keywords: Sequence[str], engagements: Sequence[TopicEngagement]) -> float:
    """Unweighted topic relevance (0–1) of one agent's history to the keywords."""
    if not engagements:
        return TOPIC_NO_HISTORY
    matching = [
        te for te in engagements
        if any(kw in te.keyword.lower() for kw in keywords)
    ]
    if not matching:
        return TOPIC_NO_MATCH
    total = sum(te.engagement_count for te in matching)
    return min(total * TOPIC_PER_ENGAGEMENT, 1.0)


def relationship_boost(agent: Agent, context: TurnContext) -> float:
    edge = context.relationship_between(agent.id, context.last_speaker)
    if edge is None:
        return 0.0
    return edge.strength


def recency_penalty(messages_since_spoke: int | None) -> float:
    if messages_since_spoke is None or messages_since_spoke >= len(RECENCY_PENALTIES):
        return 0.0
    return RECENCY_PENALTIES[messages_since_spoke]


def is_directly_addressed(name: str, message: str) -> bool:
    """True for "Sarah,", "Sarah?", "@sarah", "hey Sarah", "Sarah can…", "ask Sarah" etc."""
    text = message.lower()
    n = name.lower()
    patterns = (
        f"{n},", f"{n}?", f"{n}!",
        f"@{n}",
        f"hey {n}", f"hi {n}",
        f"{n} what", f"{n} can", f"{n} do",
        f"ask {n}", f"tell {n}",
    )
    return any(p in text for p in patterns)


def score(
    agent: Agent,
    session_state: SessionState,
    mood_state: MoodState,
    context: TurnContext,
) -> float:
    """Likelihood (0–1) that the agent responds this turn."""
    total = agent.volatility * VOLATILITY_WEIGHT
    total += abs(speaking_modifier(mood_state.mood, mood_state.intensity)) * MOOD_WEIGHT
    total += topic_relevance(
        extract_keywords(context.user_message),
        context.engagements_for(agent.id),
    ) * TOPIC_WEIGHT
    total += relationship_boost(agent, context) * RELATIONSHIP_WEIGHT
    total += recency_penalty(context.messages_since_spoke(agent.id, session_state))
    if is_directly_addressed(agent.name, context.user_message):
        total += ADDRESS_BONUS
    return clamp(total)


# ---------------------------------------------------------------------------
# Queue
# ---------------------------------------------------------------------------

def build_queue(
    agents: Sequence[Agent],
    session_states: Mapping[str, SessionState],
    moods: Mapping[str, MoodState],
    context: TurnContext,
    *,
    session_id: str = "",
) -> SpeakingQueue:
    """Score every agent and split them into primary / secondary / silent.

    `agents` must be non-empty; callers reject an empty roster first.
    """
    if not agents:
        raise ValueError("build_queue needs at least one agent")

    scored = []
    for agent in agents:
        state = session_state_for(session_states, agent.id, session_id)
        mood = mood_for(moods, agent.id, session_id)
        scored.append(ScoredAgent(
            agent=agent,
            mood_state=mood,
            session_state=state,
            score=score(agent, state, mood, context),
        ))

    ranked = sorted(scored, key=lambda s: s.score, reverse=True)
    queue = SpeakingQueue(
        primary=ranked[0],
        secondary=[s for s in ranked[1:] if s.score > SECONDARY_THRESHOLD],
        silent=[s for s in ranked[1:] if s.score <= SECONDARY_THRESHOLD],
    )
    logger.info(
        "queue primary=%s(%.2f) secondary=%s silent=%s",
        queue.primary.agent.name, queue.primary.score,
        [f"{s.agent.name}({s.score:.2f})" for s in queue.secondary],
        [s.agent.name for s in queue.silent],
    )
    return queue


# ---------------------------------------------------------------------------
# Write-back
# ---------------------------------------------------------------------------

def record_speaking(
    store: SessionStore,
    user_id: str,
    session_id: str,
    agent_id: str,
    *,
    now: datetime | None = None,
) -> SessionState:
    """Count one more message for the agent and stamp the time it spoke.

    Call once per agent per turn in which it produced a response.
    """
    now = now or datetime.now(timezone.utc)
    state = store.get_session_state(user_id, session_id, agent_id)
    if state is None:
        state = SessionState(agent_id=agent_id, session_id=session_id)
    state = state.model_copy(update={
        "messages_this_session": state.messages_this_session + 1,
        "last_spoke_at": now,
    })
    store.save_session_state(user_id, state)
    return state


def record_topic_engagement(
    store: SessionStore,
    user_id: str,
    agent_id: str,
    message: str,
    *,
    now: datetime | None = None,
) -> list[TopicEngagement]:
    """Bump the agent's engagement count for each keyword in the message.

    Not idempotent: a retried call counts twice. A keyword whose write fails
    is logged and skipped; the others are still recorded. Returns the
    engagements that were saved.
    """
    now = now or datetime.now(timezone.utc)
    updated: list[TopicEngagement] = []
    for keyword in extract_keywords(message):
        existing = store.get_topic_engagement(user_id, agent_id, keyword)
        if existing is None:
            engagement = TopicEngagement(
                agent_id=agent_id, user_id=user_id, keyword=keyword,
                engagement_count=1, last_discussed_at=now,
            )
        else:
            engagement = existing.model_copy(update={
                "engagement_count": existing.engagement_count + 1,
                "last_discussed_at": now,
            })
        try:
            store.save_topic_engagement(engagement)
        except (OSError, ValueError):
            logger.exception("Failed to save topic %r for %s", keyword, agent_id)
            continue
        updated.append(engagement)
    return updated
