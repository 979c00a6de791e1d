"""Pytest configuration and shared fixtures."""

import pytest
import sys
from pathlib import Path
from typing import Any, Callable

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from kgqa.graph import GraphClient


Responder = Callable[[str, dict[str, Any]], list[dict[str, Any]] | None]


class FakeGraph(GraphClient):
    """In-memory graph collaborator.

    Each responder sees (query, parameters) and returns rows, or None to
    pass. Queries containing a ``fail_on`` marker raise RuntimeError.
    """

    def __init__(
        self,
        responders: list[Responder] | None = None,
        schema: str = "labels: dish, ingredient\nrelationship_types: CONTAINS, PART_OF",
        fail_on: tuple[str, ...] = (),
    ):
        self.responders = list(responders or [])
        self.schema = schema
        self.fail_on = fail_on
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def execute_query(self, query, parameters=None):
        params = parameters or {}
        self.calls.append((query, params))
        for marker in self.fail_on:
            if marker in query:
                raise RuntimeError(f"Neo.ClientError.Statement.SyntaxError near '{marker}'")
        for responder in self.responders:
            rows = responder(query, params)
            if rows is not None:
                return [dict(row) for row in rows]
        return []

    async def get_schema(self):
        return self.schema


FLAMMKUCHEN_ROWS = [
    {"entity": "Flammkuchen", "name": "Bacon", "description": "Smoked lardons", "type": "ingredient"},
    {"entity": "Flammkuchen", "name": "Creme fraiche", "description": "Soured cream", "type": "ingredient"},
    {"entity": "Flammkuchen", "name": "Onion", "description": "Thinly sliced", "type": "ingredient"},
]


def flammkuchen_responder(query, params):
    if params.get("entity_name", "").lower() == "flammkuchen":
        return FLAMMKUCHEN_ROWS
    return None


@pytest.fixture
def empty_graph():
    """Graph with no nodes: every query returns zero rows."""
    return FakeGraph()


@pytest.fixture
def recipe_graph():
    """Graph that knows the three Flammkuchen ingredients."""
    return FakeGraph(responders=[flammkuchen_responder])


@pytest.fixture(scope="session")
def event_loop_policy():
    """Use default event loop policy for Windows compatibility."""
    import asyncio
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    return asyncio.get_event_loop_policy()
