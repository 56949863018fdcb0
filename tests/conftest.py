"""
Shared fixtures for the agentgraph test suite.
"""
import sys
import os
import pytest
import pytest_asyncio

# Ensure project root is on sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Set env vars before any imports that read them
os.environ["ENVIRONMENT"] = "dev"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///test.db")
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("CHECKPOINT_BACKEND", "memory")
os.environ.setdefault("REDIS_URL", "redis://localhost:1/0")


class StubClient:
    """Model client that echoes the prompt it was given."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    async def ainvoke(self, prompt_text):
        self.prompts.append(prompt_text)
        if self.error is not None:
            raise self.error
        return self.reply if self.reply is not None else f"Echo: {prompt_text}"


class StubLookup:
    """Context lookup returning a canned result or raising."""

    def __init__(self, result=None, error=None):
        self.result = result or {}
        self.error = error
        self.queries = []

    async def lookup(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def make_client():
    return StubClient


@pytest.fixture
def make_lookup():
    return StubLookup


@pytest.fixture
def schema():
    """Fresh assistant state schema."""
    from agentgraph.assistant.state import build_schema
    return build_schema()


@pytest.fixture
def history_store():
    """Fresh in-memory ConversationStore."""
    from agentgraph.history.conversation_store import ConversationStore
    return ConversationStore()


@pytest.fixture
def side_channel():
    from agentgraph.engine.side_channel import BestEffortChannel
    return BestEffortChannel()


@pytest.fixture
def assistant_graph(history_store, side_channel):
    """Compiled assistant graph over stub collaborators."""
    from agentgraph.assistant.graph import compile_assistant_graph
    return compile_assistant_graph(
        StubClient(),
        StubLookup({"user_data": {"balance": 42}}),
        StubLookup({"product_data": [{"name": "Widget", "inventory": 7}]}),
        history=history_store,
        side_channel=side_channel,
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory over a fresh sqlite database with all tables created."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
    from agentgraph.db.engine import init_models, make_engine

    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'agentgraph.db'}")
    await init_models(engine)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
