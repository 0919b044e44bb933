"""Group chat turn pipeline.

One user message in, an ordered set of agent replies out:
  1. Every active agent's mood moves in response to the message.
  2. The speaking queue scores agents and picks primary / secondary / silent.
  3. The primary replies first; secondaries reply in parallel after it,
     each seeing the primary's line, delivered with a staggered delay.
  4. Replies, moods, speaking counters and topic engagements are stored.

See orchestrator.py for the turn itself.
"""

from ensemble.pipeline.orchestrator import (
    FALLBACK_REPLY,
    SESSION_LOCKS,
    SessionLocks,
    TurnInputError,
    run_turn,
)

__all__ = [
    "FALLBACK_REPLY",
    "SESSION_LOCKS",
    "SessionLocks",
    "TurnInputError",
    "run_turn",
]
