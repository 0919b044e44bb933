"""Turn orchestrator — runs one user message through the group chat end-to-end.

Turn flow:
  1. Validate input and load agents, history, session states, topic
     engagements, relationships and moods for the session.
  2. Detect triggers once; move every agent's mood and persist it.
  3. Score all agents and build the speaking queue.
  4. Primary: generate a reply, persist it with the user message, record
     that the agent spoke. On failure emit a fallback line instead.
  5. Secondaries: fan out in parallel, each seeing the primary's reply.
     A failed secondary is dropped from the output; the rest continue.
  6. Persist secondary replies and record that those agents spoke.

Turns for one session are serialised through SessionLocks so speaking
counters stay monotonic. Different sessions never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from ensemble.context import TurnContext, mood_for
from ensemble.llm import LLM, LLMError
from ensemble.models import (
    AgentResponse,
    ChatMessage,
    MoodState,
    ScoredAgent,
    TurnResult,
)
from ensemble.mood import detect_triggers, mood_prompt, update_mood
from ensemble.prompts import DEFAULT_HISTORY_LIMIT, build_conversation, build_system_prompt
from ensemble.speaking_queue import build_queue, record_speaking, record_topic_engagement
from ensemble.storage import Storage

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, I'm having trouble responding right now..."
DEFAULT_SECONDARY_DELAY_MS = 1200


class TurnInputError(ValueError):
    """Raised before a turn starts when its input is unusable."""


class SessionLocks:
    """One asyncio.Lock per (user, session), held only while a turn needs it.

    A lock is dropped once its last holder or waiter leaves.
    """

    def __init__(self) -> None:
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._users: dict[tuple[str, str], int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, user_id: str, session_id: str) -> AsyncIterator[None]:
        key = (user_id, session_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


SESSION_LOCKS = SessionLocks()


async def run_turn(
    *,
    storage: Storage,
    llm: LLM,
    user_id: str,
    session_id: str,
    user_message: str,
    agent_ids: list[str],
    persona: str | None = None,
    scene: str | None = None,
    secondary_delay_ms: int = DEFAULT_SECONDARY_DELAY_MS,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
    locks: SessionLocks | None = None,
) -> TurnResult:
    """Execute one group-chat turn and return the replies, queue and new moods."""
    if not user_message.strip():
        raise TurnInputError("User message must not be empty")
    if not agent_ids:
        raise TurnInputError("At least one active agent is required")

    async with (locks or SESSION_LOCKS).hold(user_id, session_id):
        return await _run_locked(
            storage=storage, llm=llm,
            user_id=user_id, session_id=session_id,
            user_message=user_message, agent_ids=agent_ids,
            persona=persona, scene=scene,
            secondary_delay_ms=secondary_delay_ms,
            history_limit=history_limit,
        )


async def _run_locked(
    *,
    storage: Storage,
    llm: LLM,
    user_id: str,
    session_id: str,
    user_message: str,
    agent_ids: list[str],
    persona: str | None,
    scene: str | None,
    secondary_delay_ms: int,
    history_limit: int,
) -> TurnResult:
    agents = storage.get_agents(agent_ids)
    missing = sorted(set(agent_ids) - {a.id for a in agents})
    if missing:
        raise TurnInputError(f"Unknown agents: {', '.join(missing)}")

    history = storage.get_messages(user_id, session_id)
    session_states = storage.get_session_states(user_id, session_id)
    stored_moods = storage.get_moods(user_id, session_id)
    context = TurnContext(
        user_message=user_message,
        history=history,
        topic_engagements=storage.get_topic_engagements(user_id, agent_ids),
        relationships=storage.get_relationships(user_id, agent_ids),
    )
    names = {a.id: a.name for a in agents}
    logger.info("turn session=%s agents=%d history=%d", session_id, len(agents), len(history))

    # ── Moods ──
    triggers = detect_triggers(user_message)
    logger.info("triggers: %s", [t.type for t in triggers])
    moods: dict[str, MoodState] = {}
    for agent in agents:
        current = mood_for(stored_moods, agent.id, session_id)
        updated = update_mood(current, triggers, agent.volatility)
        logger.info(
            "mood %s: %s(%.2f) -> %s(%.2f)", agent.name,
            current.mood, current.intensity, updated.mood, updated.intensity,
        )
        moods[agent.id] = updated
        try:
            storage.save_mood(user_id, updated)
        except (OSError, ValueError):
            logger.exception("Failed to save mood for %s", agent.name)

    # ── Queue ──
    queue = build_queue(agents, session_states, moods, context, session_id=session_id)

    async def generate(stage: str, scored: ScoredAgent, transcript: list[ChatMessage],
                       new_message: str | None) -> str:
        agent = scored.agent
        hint = mood_prompt(scored.mood_state.mood, scored.mood_state.intensity, agent)
        system = build_system_prompt(agent, hint, persona=persona, scene=scene)
        messages = build_conversation(system, transcript, names, new_message, history_limit)
        text = await llm(
            stage, messages,
            max_tokens=agent.max_response_tokens,
            temperature=agent.volatility,
        )
        text = text.strip()
        if not text:
            raise LLMError(f"Empty reply for {agent.name}")
        return text

    def reply_message(scored: ScoredAgent, text: str, is_primary: bool) -> ChatMessage:
        return ChatMessage(
            speaker=scored.agent.id, content=text,
            mood=scored.mood_state.mood,
            mood_intensity=scored.mood_state.intensity,
            is_primary=is_primary,
        )

    def response(scored: ScoredAgent, text: str, is_primary: bool,
                 delay_ms: int = 0, error: bool = False) -> AgentResponse:
        return AgentResponse(
            agent_id=scored.agent.id, agent_name=scored.agent.name,
            content=text, delay_ms=delay_ms, is_primary=is_primary,
            mood=scored.mood_state.mood,
            mood_intensity=scored.mood_state.intensity,
            error=error,
        )

    # ── Primary ──
    responses: list[AgentResponse] = []
    user_msg = ChatMessage(speaker="user", content=user_message)
    transcript = [*history, user_msg]
    primary = queue.primary
    try:
        text = await generate("primary", primary, history, user_message)
    except Exception:
        logger.exception("Primary reply failed for %s", primary.agent.name)
        responses.append(response(primary, FALLBACK_REPLY, True, error=True))
        _persist(storage, user_id, session_id, [user_msg])
    else:
        logger.info("primary %s: %r", primary.agent.name, text)
        primary_msg = reply_message(primary, text, True)
        transcript.append(primary_msg)
        responses.append(response(primary, text, True))
        _persist(storage, user_id, session_id, [user_msg, primary_msg])
        _write_back(storage, user_id, session_id, primary.agent.id, user_message)

    # ── Secondaries ──
    if queue.secondary:
        results = await asyncio.gather(
            *(generate("secondary", s, transcript, None) for s in queue.secondary),
            return_exceptions=True,
        )
        secondary_msgs: list[ChatMessage] = []
        for index, (scored, result) in enumerate(zip(queue.secondary, results)):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("Secondary reply failed for %s: %s", scored.agent.name, result)
                continue
            logger.info("secondary %s: %r", scored.agent.name, result)
            secondary_msgs.append(reply_message(scored, result, False))
            responses.append(response(
                scored, result, False, delay_ms=(index + 1) * secondary_delay_ms,
            ))
        _persist(storage, user_id, session_id, secondary_msgs)
        for msg in secondary_msgs:
            _write_back(storage, user_id, session_id, msg.speaker, user_message)

    logger.info("turn session=%s produced %d responses", session_id, len(responses))
    return TurnResult(
        responses=responses,
        queue=queue,
        moods=[moods[a.id] for a in agents],
    )


def _persist(storage: Storage, user_id: str, session_id: str, messages: list[ChatMessage]) -> None:
    if not messages:
        return
    try:
        storage.append_messages(user_id, session_id, messages)
    except (OSError, ValueError):
        logger.exception("Failed to persist %d messages for session %s", len(messages), session_id)


def _write_back(storage: Storage, user_id: str, session_id: str, agent_id: str,
                user_message: str) -> None:
    """Record that an agent spoke. Failures are logged, never raised."""
    try:
        record_speaking(storage, user_id, session_id, agent_id)
    except (OSError, ValueError):
        logger.exception("Failed to record speaking for %s", agent_id)
    try:
        record_topic_engagement(storage, user_id, agent_id, user_message)
    except (OSError, ValueError):
        logger.exception("Failed to record topic engagement for %s", agent_id)
