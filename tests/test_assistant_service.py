"""
Tests for the assistant hosting service — checkpoints, resume, history passthrough.
Run: pytest tests/test_assistant_service.py -v
"""
import pytest

from agentgraph.assistant import APOLOGY_RESPONSE, AssistantService
from agentgraph.checkpoint import CheckpointError, InMemoryCheckpointStore
from agentgraph.config.settings import Settings
from agentgraph.engine import END


def _service(make_client, make_lookup, checkpoints=None, **settings_overrides):
    return AssistantService(
        app_settings=Settings(**settings_overrides),
        client=make_client(),
        user_lookup=make_lookup({"user_data": {"balance": 42}}),
        product_lookup=make_lookup(),
        checkpoints=checkpoints or InMemoryCheckpointStore(),
    )


class FailingCheckpointStore(InMemoryCheckpointStore):

    async def save(self, instance_id, state, current_step):
        raise CheckpointError("disk full")


class TestAssistantService:

    @pytest.mark.asyncio
    async def test_ask_answers_and_checkpoints(self, make_client, make_lookup):
        store = InMemoryCheckpointStore()
        service = _service(make_client, make_lookup, store)
        reply = await service.ask("What is my account balance?", user_id="u-1", instance_id="inst-1")

        assert "42" in reply.response
        assert reply.current_step == "complete"
        assert reply.error is False
        assert reply.checkpoint_saved is True

        saved = await store.load("inst-1")
        assert saved.is_complete
        assert saved.state["user_id"] == "u-1"

        await service.aclose()
        history = await service.history("u-1")
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_follow_up_continues_message_log(self, make_client, make_lookup):
        store = InMemoryCheckpointStore()
        service = _service(make_client, make_lookup, store)
        await service.ask("What is my account balance?", instance_id="inst-2")
        await service.ask("Thanks, tell me a joke", instance_id="inst-2")

        saved = await store.load("inst-2")
        contents = [m.content for m in saved.state["messages"]]
        assert len(contents) == 4
        assert contents[0] == "What is my account balance?"
        assert contents[2] == "Thanks, tell me a joke"
        assert saved.state["context"] == {"user_data": {"balance": 42}}

    @pytest.mark.asyncio
    async def test_checkpoint_failure_is_reported_not_raised(self, make_client, make_lookup):
        service = _service(make_client, make_lookup, FailingCheckpointStore())
        reply = await service.ask("hello there")
        assert reply.current_step == "complete"
        assert reply.checkpoint_saved is False
        assert reply.checkpoint_error == "disk full"

    @pytest.mark.asyncio
    async def test_error_reply_hides_exception_text(self, make_client, make_lookup):
        service = AssistantService(
            app_settings=Settings(),
            client=make_client(),
            user_lookup=make_lookup(error=ConnectionError("secret dsn unreachable")),
            product_lookup=make_lookup(),
        )
        reply = await service.ask("show my account")
        assert reply.error is True
        assert reply.response == APOLOGY_RESPONSE
        assert "secret" not in reply.response

    @pytest.mark.asyncio
    async def test_per_step_checkpoints_and_resume(self, make_client, make_lookup):
        store = InMemoryCheckpointStore()
        service = _service(make_client, make_lookup, store, CHECKPOINT_EVERY_STEP=True, AGENT_MAX_STEPS=2)
        reply = await service.ask("What is my account balance?", instance_id="inst-3")
        assert reply.error is True

        interrupted = await store.load("inst-3")
        assert interrupted.current_step == "process"
        assert interrupted.is_complete is False

        service.settings = Settings()
        resumed = await service.resume("inst-3")
        assert "42" in resumed.response
        assert (await store.load("inst-3")).current_step == END

    @pytest.mark.asyncio
    async def test_ask_on_interrupted_instance_starts_new_query(self, make_client, make_lookup):
        store = InMemoryCheckpointStore()
        service = _service(make_client, make_lookup, store, CHECKPOINT_EVERY_STEP=True, AGENT_MAX_STEPS=2)
        await service.ask("What is my account balance?", instance_id="inst-4")
        assert (await store.load("inst-4")).is_complete is False

        service.settings = Settings()
        reply = await service.ask("Tell me a joke", instance_id="inst-4")
        assert reply.error is False
        assert reply.current_step == "complete"
        assert reply.thoughts[-2] == "Determined next step: process"

        saved = await store.load("inst-4")
        assert saved.is_complete
        contents = [m.content for m in saved.state["messages"]]
        assert contents[:2] == ["What is my account balance?", "Tell me a joke"]
        assert len(contents) == 3

    @pytest.mark.asyncio
    async def test_reply_carries_context(self, make_client, make_lookup):
        reply = await _service(make_client, make_lookup).ask("What is my account balance?")
        assert reply.context == {"user_data": {"balance": 42}}

    @pytest.mark.asyncio
    async def test_health_reports_backends(self, make_client, make_lookup):
        service = _service(make_client, make_lookup)
        assert service.health()["checkpoint_connected"] is None

        await service.start()
        await service.ask("hello there", user_id="u-5")
        await service.side_channel.flush()
        health = service.health()
        assert health["status"] == "healthy"
        assert health["provider"] == "openai"
        assert health["checkpoint_backend"] == "memory"
        assert health["checkpoint_connected"] is True
        assert health["history_backend"] == "memory"
        assert health["side_channel"] == {"submitted": 1, "failed": 0, "pending": 0}

    @pytest.mark.asyncio
    async def test_health_degraded_without_redis(self, make_client, make_lookup):
        from agentgraph.cache.redis_state import RedisStateManager
        from agentgraph.checkpoint import RedisCheckpointStore

        store = RedisCheckpointStore(RedisStateManager(redis_url="redis://localhost:1/0"))
        service = _service(make_client, make_lookup, store)
        await service.start()
        health = service.health()
        assert health["status"] == "degraded"
        assert health["checkpoint_connected"] is False
        await service.aclose()

    @pytest.mark.asyncio
    async def test_resume_unknown_instance(self, make_client, make_lookup):
        with pytest.raises(CheckpointError):
            await _service(make_client, make_lookup).resume("missing")

    def test_ask_sync(self, make_client, make_lookup):
        reply = _service(make_client, make_lookup).ask_sync("Tell me a joke", user_id="u-9")
        assert reply.current_step == "complete"

    def test_startup_validates_provider(self):
        from agentgraph.llm_registry import ProviderConfigError

        with pytest.raises(ProviderConfigError):
            AssistantService(app_settings=Settings(LLM_PROVIDER="anthropic", ANTHROPIC_API_KEY=None))
