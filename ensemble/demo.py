"""Seed a storage directory with the default cast for development/testing."""

from ensemble.models import Agent, RelationshipEdge
from ensemble.storage import Storage

DEMO_AGENTS = [
    Agent(
        id="maya",
        name="Maya",
        personality="Energetic art student who loves creativity, colors, and seeing the "
        "artistic side of everything. Optimistic and playful, quick to get carried away "
        "by visual ideas.",
        temperature=0.9,
    ),
    Agent(
        id="alex",
        name="Alex",
        personality="Thoughtful philosophy major who asks deep questions about human nature, "
        "meaning, and existence. Contemplative and curious.",
        temperature=0.6,
    ),
    Agent(
        id="zoe",
        name="Zoe",
        personality="Sarcastic tech enthusiast with quick wit and dry humor. Slightly "
        "cynical but ultimately caring.",
        temperature=0.8,
    ),
    Agent(
        id="finn",
        name="Finn",
        personality="Laid-back musician who relates everything back to music, lyrics, or "
        "cultural moments. Supportive and chill.",
        temperature=0.5,
    ),
]

# (agent, related, strength)
DEMO_RELATIONSHIPS = [
    ("maya", "finn", 0.8),
    ("alex", "zoe", 0.6),
    ("maya", "zoe", 0.4),
]


def create_demo_data(storage: Storage, user_id: str) -> list[Agent]:
    """Upsert the demo agents and their relationships for `user_id`."""
    for agent in DEMO_AGENTS:
        storage.save_agent(agent)
    for agent_id, related_id, strength in DEMO_RELATIONSHIPS:
        storage.save_relationship(RelationshipEdge(
            agent_id=agent_id, related_id=related_id,
            user_id=user_id, strength=strength,
        ))
    return list(DEMO_AGENTS)
