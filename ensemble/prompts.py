"""Handlebars prompt rendering for agent responses."""

from collections.abc import Callable, Mapping, Sequence
from typing import Any

import pybars

from ensemble.models import Agent, ChatMessage

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}

DEFAULT_HISTORY_LIMIT = 10

# Triple-stash everywhere: prompts are plain text, not HTML.
DEFAULT_SYSTEM_TEMPLATE = """\
You are {{{agent.name}}}.

PERSONALITY & BACKGROUND:
{{{agent.personality}}}

{{#if persona}}USER PERSONA:
{{{persona}}}

{{/if}}{{#if scene}}CURRENT SCENE:
{{{scene}}}

{{/if}}IMPORTANT INSTRUCTIONS:
- Stay in character at all times
- Respond naturally and conversationally
- Keep responses concise (2-4 sentences typical)
- Use actions in *asterisks* to show body language or emotions
- Don't break the fourth wall or mention being an AI
- React authentically to what others say{{{mood_hint}}}"""


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_system_prompt(
    agent: Agent,
    mood_hint: str = "",
    persona: str | None = None,
    scene: str | None = None,
    template: str = DEFAULT_SYSTEM_TEMPLATE,
) -> str:
    ctx = {
        "agent": {"id": agent.id, "name": agent.name, "personality": agent.personality},
        "persona": persona or "",
        "scene": scene or "",
        "mood_hint": mood_hint,
    }
    return render_prompt(template, ctx)


def build_conversation(
    system_prompt: str,
    history: Sequence[ChatMessage],
    names: Mapping[str, str],
    user_message: str | None = None,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[dict[str, str]]:
    """Chat transcript for one agent: system prompt, recent history, new message.

    Agent lines become assistant turns tagged "[Name]: " so every agent can
    tell who said what. `names` maps agent id to display name.
    """
    messages = [{"role": "system", "content": system_prompt}]
    recent = list(history)[-limit:] if limit > 0 else []
    for msg in recent:
        if msg.speaker == "user":
            messages.append({"role": "user", "content": msg.content})
        else:
            name = names.get(msg.speaker, msg.speaker)
            messages.append({"role": "assistant", "content": f"[{name}]: {msg.content}"})
    if user_message:
        messages.append({"role": "user", "content": user_message})
    return messages
