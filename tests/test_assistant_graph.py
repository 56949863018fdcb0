"""
Tests for the assistant workflow — router, context nodes, process node, end-to-end runs.
Run: pytest tests/test_assistant_graph.py -v
"""
import asyncio
import pytest
from langchain_core.messages import AIMessage, HumanMessage

from agentgraph.assistant import (
    APOLOGY_RESPONSE, ASSISTANCE_RESPONSE, compile_assistant_graph, error_node,
    make_fetch_node, make_process_node, provide_assistance_node, route_query, router_node,
)
from agentgraph.assistant.nodes import format_prompt
from agentgraph.engine import RunOptions


# ══════════════════════════════════════════════════════════════════
# ROUTER
# ══════════════════════════════════════════════════════════════════


class TestRouter:

    @pytest.mark.parametrize("query,expected", [
        ("What is my account balance?", "fetch_user_data"),
        ("Show customer details", "fetch_user_data"),
        ("How much inventory is left?", "fetch_product_data"),
        ("Tell me about this item", "fetch_product_data"),
        ("Can you assist me?", "provide_assistance"),
        ("HELP", "provide_assistance"),
        ("What is the weather today?", "process"),
    ])
    def test_keyword_routing(self, query, expected):
        assert route_query(query) == expected

    def test_user_keywords_checked_first(self):
        assert route_query("help with my account") == "fetch_user_data"

    def test_router_prefers_latest_message(self, schema):
        state = schema.merge(schema.initial_state(), {
            "query": "product question",
            "messages": [HumanMessage(content="I need help")],
        })
        update = router_node(state)
        assert update["current_step"] == "provide_assistance"
        assert update["thoughts"] == ["Determined next step: provide_assistance"]

    def test_router_falls_back_to_query(self, schema):
        state = schema.merge(schema.initial_state(), {"query": "inventory please"})
        assert router_node(state)["current_step"] == "fetch_product_data"

    def test_router_ignores_assistant_replies(self, schema):
        state = schema.merge(schema.initial_state(), {
            "query": "tell me a joke",
            "messages": [HumanMessage(content="hi"), AIMessage(content="Your account balance is 42")],
        })
        assert router_node(state)["current_step"] == "process"

    def test_router_reads_role_tagged_dicts(self):
        state = {
            "query": "",
            "messages": [
                {"role": "user", "content": "show my account"},
                {"role": "assistant", "content": "Which product?"},
            ],
        }
        assert router_node(state)["current_step"] == "fetch_user_data"

    @pytest.mark.asyncio
    async def test_snapshot_run_routes_on_user_text(self, assistant_graph):
        steps = []

        await assistant_graph.run(
            {"query": "tell me a joke"},
            RunOptions(
                snapshot={"messages": [HumanMessage(content="hi"),
                                       AIMessage(content="Your account balance is 42")]},
                on_step=lambda e: steps.append(e.node),
            ),
        )
        assert steps == ["router", "process"]


# ══════════════════════════════════════════════════════════════════
# NODES
# ══════════════════════════════════════════════════════════════════


class TestNodes:

    @pytest.mark.asyncio
    async def test_fetch_node_merges_context(self, make_lookup):
        lookup = make_lookup({"user_data": {"balance": 42}})
        node = make_fetch_node(lookup, "user")
        update = await node({"query": "user id: 7"})
        assert update["context"] == {"user_data": {"balance": 42}}
        assert update["current_step"] == "process"
        assert lookup.queries == ["user id: 7"]

    @pytest.mark.asyncio
    async def test_fetch_node_converts_failure(self, make_lookup):
        node = make_fetch_node(make_lookup(error=ConnectionError("db gone")), "product")
        update = await node({"query": "item: lamp"})
        assert update["error"] == "db gone"
        assert update["current_step"] == "error"
        assert update["thoughts"] == ["Error fetching product data: db gone"]

    @pytest.mark.asyncio
    async def test_process_node_success(self, make_client):
        client = make_client(reply="The answer")
        update = await make_process_node(client)({"query": "hi", "context": {"k": "v"}})
        assert update["response"] == "The answer"
        assert update["current_step"] == "complete"
        assert isinstance(update["messages"][0], AIMessage)
        assert '"k": "v"' in client.prompts[0]
        assert "hi" in client.prompts[0]

    @pytest.mark.asyncio
    async def test_process_node_converts_model_failure(self, make_client):
        client = make_client(error=TimeoutError("model timed out"))
        update = await make_process_node(client)({"query": "hi", "context": {}})
        assert update["error"] == "model timed out"
        assert update["current_step"] == "error"
        assert update["thoughts"] == ["Error in processing: model timed out"]
        assert "response" not in update

    @pytest.mark.asyncio
    async def test_process_node_saves_history(self, make_client, history_store, side_channel):
        node = make_process_node(make_client(reply="ok"), history_store, side_channel)
        await node({"query": "q", "context": {"a": 1}, "user_id": "u-1"})
        await side_channel.flush()
        entries = await history_store.get_history("u-1")
        assert len(entries) == 1
        assert entries[0].response == "ok"
        assert entries[0].context == {"a": 1}

    @pytest.mark.asyncio
    async def test_history_failure_does_not_fail_node(self, make_client, side_channel):
        class BrokenHistory:
            async def append(self, *args):
                raise RuntimeError("history offline")

        node = make_process_node(make_client(reply="ok"), BrokenHistory(), side_channel)
        update = await node({"query": "q", "context": {}, "user_id": "u-1"})
        await side_channel.flush()
        assert update["current_step"] == "complete"
        assert side_channel.stats()["failed"] == 1

    def test_fixed_response_nodes(self):
        assert provide_assistance_node({}) == {"response": ASSISTANCE_RESPONSE, "current_step": "complete"}
        assert error_node({}) == {"response": APOLOGY_RESPONSE, "current_step": "error_handled"}

    def test_prompt_contains_context_json(self):
        prompt = format_prompt({"user_data": {"balance": 42}}, "balance?")
        assert '"balance": 42' in prompt
        assert "You are an AI assistant." in prompt


# ══════════════════════════════════════════════════════════════════
# END-TO-END
# ══════════════════════════════════════════════════════════════════


class TestAssistantRuns:

    @pytest.mark.asyncio
    async def test_account_balance_example(self, assistant_graph):
        steps = []

        final = await assistant_graph.run(
            {"query": "What is my account balance?"},
            RunOptions(on_step=lambda e: steps.append(e.node)),
        )
        assert steps == ["router", "fetch_user_data", "process"]
        assert "42" in final["response"]
        assert final["current_step"] == "complete"
        assert final["error"] is None
        assert final["thoughts"][0] == "Determined next step: fetch_user_data"

    @pytest.mark.asyncio
    async def test_product_query(self, assistant_graph):
        final = await assistant_graph.run({"query": "Is there inventory for the Widget?"})
        assert "Widget" in final["response"]
        assert final["context"]["product_data"][0]["inventory"] == 7

    @pytest.mark.asyncio
    async def test_general_query_goes_straight_to_process(self, assistant_graph):
        steps = []

        await assistant_graph.run({"query": "Tell me a joke"}, RunOptions(on_step=lambda e: steps.append(e.node)))
        assert steps == ["router", "process"]

    @pytest.mark.asyncio
    async def test_assistance_continues_to_process(self, assistant_graph):
        steps = []

        final = await assistant_graph.run(
            {"query": "please assist"}, RunOptions(on_step=lambda e: steps.append(e.node)),
        )
        assert steps == ["router", "provide_assistance", "process"]
        assert final["current_step"] == "complete"

    @pytest.mark.asyncio
    async def test_lookup_failure_ends_in_apology(self, make_client, make_lookup):
        graph = compile_assistant_graph(
            make_client(),
            make_lookup(error=ConnectionError("user store unreachable")),
            make_lookup(),
        )
        final = await graph.run({"query": "show my account"})
        assert final["error"] is not None
        assert final["response"] == APOLOGY_RESPONSE
        assert final["current_step"] == "error_handled"
        assert "unreachable" not in final["response"]

    @pytest.mark.asyncio
    async def test_model_failure_ends_in_apology(self, make_client, make_lookup):
        graph = compile_assistant_graph(make_client(error=RuntimeError("quota")), make_lookup(), make_lookup())
        final = await graph.run({"query": "hello there"})
        assert final["response"] == APOLOGY_RESPONSE
        assert final["error"] == "quota"

    @pytest.mark.asyncio
    async def test_messages_are_appended_in_order(self, assistant_graph):
        final = await assistant_graph.run({
            "query": "hello",
            "messages": [HumanMessage(content="hello")],
        })
        assert isinstance(final["messages"][0], HumanMessage)
        assert isinstance(final["messages"][1], AIMessage)

    @pytest.mark.asyncio
    async def test_history_written_for_identified_user(self, assistant_graph, history_store, side_channel):
        await assistant_graph.run({"query": "What is my account balance?", "user_id": "u-42"})
        await side_channel.flush()
        entries = await history_store.get_history("u-42")
        assert len(entries) == 1
        assert entries[0].context == {"user_data": {"balance": 42}}

    @pytest.mark.asyncio
    async def test_concurrent_runs_do_not_share_context(self, make_client, make_lookup):

        graph = compile_assistant_graph(
            make_client(),
            make_lookup({"user_data": {"balance": 42}}),
            make_lookup({"product_data": [{"name": "Lamp"}]}),
        )
        user_run, product_run = await asyncio.gather(
            graph.run({"query": "account balance", "messages": [HumanMessage(content="account balance")]}),
            graph.run({"query": "item: lamp", "messages": [HumanMessage(content="item: lamp")]}),
        )
        assert "product_data" not in user_run["context"]
        assert "user_data" not in product_run["context"]
        assert [m.content for m in user_run["messages"]][0] == "account balance"
        assert [m.content for m in product_run["messages"]][0] == "item: lamp"
