"""Mood engine — per-agent emotional state driven by triggers in the user's message.

Moods and their baselines (intensity a mood starts at when entered):
  neutral    0.5 — balanced, default state
  excited    0.7 — enthusiastic, might interrupt
  content    0.6 — relaxed, pleasant
  annoyed    0.6 — impatient, short responses
  defensive  0.7 — guarded, justifies positions
  sad        0.5 — quieter, withdrawn

Triggers: six keyword sets (disagreement, agreement, compliment, joke,
criticism, sadness). A trigger fires when at least one of its keywords is
contained in the lowercased message; strength = min(matches × 0.2, 1.0).

Transitions: every (mood, trigger) pair maps to (target mood, strength).
The strongest trigger wins (first detected on ties). Changing mood starts at
the target's baseline + delta; staying in the same mood escalates from the
current intensity. delta = strength × (volatility × 1.2) × trigger strength.

Decay (no triggers): intensity drops by 10% of itself, floored at 0.3; below
0.4 the mood collapses to neutral at 0.5.

The tables below are read-only and checked for completeness at import.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import NamedTuple

from ensemble.models import (
    DEFAULT_TEMPERATURE,
    MOODS,
    NEUTRAL_INTENSITY,
    TRIGGER_TYPES,
    Agent,
    Mood,
    MoodState,
    Trigger,
    TriggerType,
    clamp,
)

logger = logging.getLogger(__name__)

KEYWORD_WEIGHT = 0.2
VOLATILITY_SCALE = 1.2
DECAY_RATE = 0.1
DECAY_FLOOR = 0.3
NEUTRAL_COLLAPSE_BELOW = 0.4
STRONG_ABOVE = 0.7


class MoodConfigError(RuntimeError):
    """Raised at import when the mood tables are incomplete or inconsistent."""


class Transition(NamedTuple):
    target: Mood
    strength: float


MOOD_BASELINES: Mapping[Mood, float] = MappingProxyType({
    "neutral": 0.5,
    "excited": 0.7,
    "content": 0.6,
    "annoyed": 0.6,
    "defensive": 0.7,
    "sad": 0.5,
})

# Declaration order is detection order, which decides strength ties.
TRIGGER_KEYWORDS: Mapping[TriggerType, tuple[str, ...]] = MappingProxyType({
    "disagreement": (
        "no", "nope", "nah", "wrong", "incorrect", "disagree",
        "won't work", "can't", "shouldn't", "but", "however",
        "actually", "that's not", "i don't think", "doubt",
    ),
    "agreement": (
        "yes", "yeah", "yep", "exactly", "right", "agree",
        "you're right", "good point", "that's true", "definitely",
        "absolutely", "for sure", "i think so too",
    ),
    "compliment": (
        "great", "amazing", "awesome", "perfect", "brilliant",
        "love", "wonderful", "excellent", "fantastic", "impressive",
        "smart", "clever", "good job", "well done", "nice",
    ),
    "joke": (
        "lol", "lmao", "haha", "hehe", "*laugh", "*chuckle",
        "funny", "hilarious", "\U0001F602", "\U0001F923", "joke",
    ),
    "criticism": (
        "bad", "terrible", "awful", "hate", "stupid", "dumb",
        "ridiculous", "nonsense", "pointless", "useless",
    ),
    "sadness": (
        "sad", "depressed", "upset", "cry", "hurt", "pain",
        "disappointed", "unhappy", "miserable", "sorry",
    ),
})


def _row(**entries: tuple[Mood, float]) -> Mapping[Mood, Transition]:
    return MappingProxyType({m: Transition(*t) for m, t in entries.items()})


TRANSITIONS: Mapping[TriggerType, Mapping[Mood, Transition]] = MappingProxyType({
    "disagreement": _row(
        neutral=("annoyed", 0.3),
        excited=("annoyed", 0.4),
        content=("neutral", 0.2),
        annoyed=("annoyed", 0.4),
        defensive=("defensive", 0.3),
        sad=("sad", 0.2),
    ),
    "agreement": _row(
        neutral=("content", 0.2),
        excited=("excited", 0.2),
        content=("content", 0.1),
        annoyed=("neutral", 0.3),
        defensive=("neutral", 0.3),
        sad=("neutral", 0.2),
    ),
    "compliment": _row(
        neutral=("content", 0.4),
        excited=("excited", 0.3),
        content=("content", 0.2),
        annoyed=("content", 0.5),
        defensive=("content", 0.4),
        sad=("content", 0.5),
    ),
    "joke": _row(
        neutral=("content", 0.3),
        excited=("excited", 0.2),
        content=("content", 0.2),
        annoyed=("neutral", 0.5),
        defensive=("neutral", 0.4),
        sad=("neutral", 0.3),
    ),
    "criticism": _row(
        neutral=("defensive", 0.4),
        excited=("defensive", 0.5),
        content=("annoyed", 0.3),
        annoyed=("defensive", 0.5),
        defensive=("defensive", 0.4),
        sad=("sad", 0.3),
    ),
    "sadness": _row(
        neutral=("sad", 0.3),
        excited=("neutral", 0.3),
        content=("neutral", 0.2),
        annoyed=("sad", 0.3),
        defensive=("sad", 0.3),
        sad=("sad", 0.2),
    ),
})


def validate_tables(
    baselines: Mapping[str, float] = MOOD_BASELINES,
    keywords: Mapping[str, tuple[str, ...]] = TRIGGER_KEYWORDS,
    transitions: Mapping[str, Mapping[str, Transition]] = TRANSITIONS,
) -> None:
    """Check that every mood has a baseline and every (mood, trigger) a transition."""
    problems: list[str] = []
    for mood in MOODS:
        if mood not in baselines:
            problems.append(f"mood {mood!r} has no baseline")
    for trigger in TRIGGER_TYPES:
        if not keywords.get(trigger):
            problems.append(f"trigger {trigger!r} has no keywords")
        row = transitions.get(trigger, {})
        for mood in MOODS:
            t = row.get(mood)
            if t is None:
                problems.append(f"no transition for ({mood!r}, {trigger!r})")
            elif t.target not in baselines:
                problems.append(f"({mood!r}, {trigger!r}) targets unknown mood {t.target!r}")
    if problems:
        raise MoodConfigError("Invalid mood tables: " + "; ".join(problems))


validate_tables()


# ---------------------------------------------------------------------------
# Trigger detection
# ---------------------------------------------------------------------------

def detect_triggers(message: str) -> list[Trigger]:
    """Return every trigger type whose keywords appear in the message."""
    text = message.lower()
    triggers: list[Trigger] = []
    for trigger_type, words in TRIGGER_KEYWORDS.items():
        matched = [w for w in words if w in text]
        if matched:
            triggers.append(Trigger(
                type=trigger_type,
                matched_keywords=matched,
                strength=min(len(matched) * KEYWORD_WEIGHT, 1.0),
            ))
    return triggers


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def decay(mood: Mood, intensity: float) -> tuple[Mood, float]:
    """Drift one step back toward neutral."""
    if mood == "neutral":
        return "neutral", NEUTRAL_INTENSITY
    intensity = clamp(intensity)
    decayed = max(DECAY_FLOOR, intensity - DECAY_RATE * intensity)
    if decayed < NEUTRAL_COLLAPSE_BELOW:
        return "neutral", NEUTRAL_INTENSITY
    return mood, decayed


def next_mood(
    mood: Mood,
    intensity: float,
    triggers: list[Trigger],
    volatility: float = DEFAULT_TEMPERATURE,
) -> tuple[Mood, float]:
    """Compute the mood an agent moves to after reading a message."""
    if not triggers:
        return decay(mood, intensity)

    intensity = clamp(intensity)
    # max() keeps the first of equally strong triggers
    strongest = max(triggers, key=lambda t: t.strength)
    transition = TRANSITIONS[strongest.type][mood]

    delta = transition.strength * (volatility * VOLATILITY_SCALE) * strongest.strength
    if transition.target != mood:
        new_intensity = MOOD_BASELINES[transition.target] + delta
    else:
        new_intensity = min(intensity + delta, 1.0)
    return transition.target, clamp(new_intensity)


def default_mood(agent_id: str, session_id: str) -> MoodState:
    return MoodState(agent_id=agent_id, session_id=session_id)


def update_mood(
    state: MoodState,
    triggers: list[Trigger],
    volatility: float = DEFAULT_TEMPERATURE,
) -> MoodState:
    """Return a new MoodState for `state` after the given triggers."""
    mood, intensity = next_mood(state.mood, state.intensity, triggers, volatility)
    logger.debug(
        "mood agent=%s %s(%.2f) -> %s(%.2f)",
        state.agent_id, state.mood, state.intensity, mood, intensity,
    )
    return state.model_copy(update={"mood": mood, "intensity": intensity})


# ---------------------------------------------------------------------------
# Speaking priority
# ---------------------------------------------------------------------------

def speaking_modifier(mood: Mood, intensity: float) -> float:
    """Signed nudge to speaking eagerness; between -0.2 and +0.3."""
    intensity = clamp(intensity)
    if mood == "excited" and intensity > 0.6:
        return 0.3 * intensity
    if mood in ("annoyed", "defensive") and intensity > 0.7:
        return 0.2 * intensity
    if mood == "sad" and intensity > 0.6:
        return -0.2 * intensity
    return 0.0


# ---------------------------------------------------------------------------
# Prompt hints: behaviour only, the mood itself is never named
# ---------------------------------------------------------------------------

_HINTS: Mapping[Mood, Mapping[str, str]] = MappingProxyType({
    "excited": {
        "moderate": (
            "You're feeling energetic and enthusiastic right now. Show this through:\n"
            "- Slightly faster, more animated responses\n"
            "- Use of exclamation points occasionally\n"
            "- Might jump in quickly when interested\n"
            "- Positive, engaged tone"
        ),
        "strong": (
            "You're very energized! Express this naturally through:\n"
            "- Quick, animated responses with energy\n"
            "- Multiple exclamation points!\n"
            "- Physical actions like *lights up*, *leans forward*, *grins*\n"
            "- Might interrupt or speak without waiting for a pause\n"
            "- Highly engaged tone"
        ),
    },
    "content": {
        "moderate": (
            "You're feeling relaxed and pleasant. Show this through:\n"
            "- Calm, comfortable responses\n"
            "- Occasional *smiles* or *relaxes*\n"
            "- Agreeable and easygoing tone\n"
            "- Less reactive to minor annoyances"
        ),
        "strong": (
            "You're really enjoying yourself right now! Express this through:\n"
            "- Warm, friendly responses\n"
            "- Frequent positive actions (*beams*, *chuckles*)\n"
            "- Very agreeable and supportive\n"
            "- Visibly enjoying the conversation"
        ),
    },
    "annoyed": {
        "moderate": (
            "Your patience is wearing thin. Show this subtly through:\n"
            "- Shorter, more curt responses\n"
            "- Less elaboration than usual\n"
            "- Occasional *sighs* or *frowns*\n"
            "- Slightly impatient tone"
        ),
        "strong": (
            "Your patience is gone. Express this clearly through:\n"
            "- Very short, clipped responses\n"
            "- Actions like *crosses arms*, *sighs heavily*, *rolls eyes*\n"
            "- Impatient or sarcastic tone\n"
            "- Minimal engagement\n"
            "- Might say things like \"whatever\", \"fine\", or \"sure\""
        ),
    },
    "defensive": {
        "moderate": (
            "You feel the need to stand your ground. Show this through:\n"
            "- Justify or explain your position more\n"
            "- Actions like *crosses arms*, *stiffens*\n"
            "- Slight edge to your tone\n"
            "- Push back on disagreement"
        ),
        "strong": (
            "You feel under attack. Express this through:\n"
            "- Strongly defend your position\n"
            "- Actions like *stands firm*, *narrows eyes*\n"
            "- Combative or argumentative tone\n"
            "- Counter-arguments to criticism\n"
            "- Phrases like \"That's not fair\" or \"You don't understand\""
        ),
    },
    "sad": {
        "moderate": (
            "You're feeling a bit down. Show this through:\n"
            "- Quieter, more withdrawn responses\n"
            "- Actions like *looks down*, *sighs softly*\n"
            "- Less enthusiastic tone\n"
            "- Shorter responses than usual"
        ),
        "strong": (
            "Everything feels heavy right now. Express this through:\n"
            "- Very quiet, withdrawn responses\n"
            "- Actions like *looks away*, *voice wavers*, *wipes eyes*\n"
            "- Dejected tone\n"
            "- Minimal responses\n"
            "- Phrases like \"I don't know...\" or \"It's fine...\""
        ),
    },
    "neutral": {
        "moderate": "You're in a balanced state. Respond naturally according to your personality.",
        "strong": "",
    },
})


def mood_prompt(mood: Mood, intensity: float, agent: Agent | None = None) -> str:
    """Behavioural hint for the system prompt, or "" when there is nothing to add."""
    intensity = clamp(intensity)
    if mood == "neutral" and intensity < 0.6:
        return ""
    level = "strong" if intensity > STRONG_ABOVE else "moderate"
    hint = _HINTS.get(mood, {}).get(level, "")
    if not hint:
        return ""
    who = f"as {agent.name} " if agent is not None else ""
    return (
        "\n\n[CURRENT EMOTIONAL STATE - DO NOT MENTION THIS EXPLICITLY]\n"
        f"{hint}\n"
        f"[Respond in character {who}while naturally expressing these behaviors]"
    )
