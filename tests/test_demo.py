from ensemble.demo import DEMO_AGENTS, create_demo_data
from ensemble.storage import Storage


def test_seeds_agents_and_relationships(storage: Storage):
    agents = create_demo_data(storage, "u1")
    assert [a.id for a in agents] == ["maya", "alex", "zoe", "finn"]
    assert storage.get_agents(["finn"])[0].temperature == 0.5
    edges = storage.get_relationships("u1", ["maya"])
    assert {(e.agent_id, e.related_id) for e in edges} == {("maya", "finn"), ("maya", "zoe")}


def test_is_idempotent(storage: Storage):
    create_demo_data(storage, "u1")
    create_demo_data(storage, "u1")
    assert len(storage.get_agents()) == len(DEMO_AGENTS)
    assert len(storage.get_relationships("u1")) == 3


def test_relationships_are_per_user(storage: Storage):
    create_demo_data(storage, "u1")
    assert storage.get_relationships("u2") == []
