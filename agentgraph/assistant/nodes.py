"""
Assistant nodes. Each returns only the channels it updates; collaborator
failures are turned into error-channel updates and never raised.

    router              -> picks the next step from query keywords
    fetch_user_data     -> user lookup into the context bag
    fetch_product_data  -> product lookup into the context bag
    process             -> model call over the context + query
    provide_assistance  -> fixed clarification
    error               -> fixed apology
"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate

from agentgraph.assistant.state import (
    STEP_ASSIST, STEP_COMPLETE, STEP_ERROR, STEP_ERROR_HANDLED,
    STEP_FETCH_PRODUCT, STEP_FETCH_USER, STEP_PROCESS,
)
from agentgraph.engine.side_channel import BestEffortChannel

logger = logging.getLogger(__name__)

ASSISTANCE_RESPONSE = (
    "I'm here to help! Could you please be more specific about what you need assistance with?"
)
APOLOGY_RESPONSE = "I encountered an error processing your request. Please try again."

# checked in order, first hit wins
ROUTE_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("user", "customer", "account"), STEP_FETCH_USER),
    (("product", "item", "inventory"), STEP_FETCH_PRODUCT),
    (("help", "assist"), STEP_ASSIST),
]

SYSTEM_PROMPT = (
    "You are an AI assistant. Use the context provided to answer questions accurately.\n"
    "Context: {context}\n"
    "If no specific user or product context is available, provide general assistance."
)

PROMPT = ChatPromptTemplate.from_messages([
    ("system", SYSTEM_PROMPT),
    ("human", "{query}"),
])


def route_query(text: str) -> str:
    """Next-step marker for a query. Plain substring match on the lower-cased text."""
    text = (text or "").lower()
    for keywords, step in ROUTE_KEYWORDS:
        if any(k in text for k in keywords):
            return step
    return STEP_PROCESS


def _is_human(message: Any) -> bool:
    if isinstance(message, BaseMessage):
        return isinstance(message, HumanMessage)
    if isinstance(message, dict):
        return message.get("type") == "human" or message.get("role") in ("human", "user")
    return False


def _routing_text(state: Mapping[str, Any]) -> str:
    # the log also holds the model's replies; only the user's own words route
    for message in reversed(state.get("messages") or []):
        if not _is_human(message):
            continue
        if isinstance(message, dict):
            content = message.get("content")
        else:
            content = message.content
        if isinstance(content, str) and content:
            return content
        break
    return state.get("query") or ""


def router_node(state: Mapping[str, Any]) -> Dict[str, Any]:
    next_step = route_query(_routing_text(state))
    return {
        "current_step": next_step,
        "thoughts": [f"Determined next step: {next_step}"],
    }


ROUTER_WRITES = ["current_step", "thoughts"]
FETCH_WRITES = ["context", "current_step", "thoughts", "error"]
PROCESS_WRITES = ["response", "messages", "current_step", "thoughts", "error"]
FIXED_RESPONSE_WRITES = ["response", "current_step"]


def make_fetch_node(lookup, domain: str):
    """
    Build a context-fetch node over `lookup` (anything with
    `async lookup(query) -> dict`). Found fields are merged into `context`.
    """

    async def fetch_node(state: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            found = await lookup.lookup(state.get("query") or "")
        except Exception as e:
            logger.warning(f"[LOOKUP] {domain} lookup failed: {e}")
            return {
                "error": str(e),
                "current_step": STEP_ERROR,
                "thoughts": [f"Error fetching {domain} data: {e}"],
            }
        return {
            "context": dict(found or {}),
            "current_step": STEP_PROCESS,
            "thoughts": [f"Fetched {domain} data" if found else f"No {domain} data found"],
        }

    fetch_node.__name__ = f"fetch_{domain}_data"
    return fetch_node


def format_prompt(context: Mapping[str, Any], query: str) -> str:
    return PROMPT.format(context=json.dumps(dict(context or {}), indent=2, default=str), query=query)


def make_process_node(client, history=None, side_channel: Optional[BestEffortChannel] = None):
    """
    Build the process node.

    `client` has `async ainvoke(prompt_text) -> str`. When `history` is given
    and the state carries a user_id, the exchange is appended through the
    side channel so a failing store never fails the node.
    """
    channel = side_channel or BestEffortChannel()

    async def process_node(state: Mapping[str, Any]) -> Dict[str, Any]:
        query = state.get("query") or ""
        context = dict(state.get("context") or {})
        try:
            text = await client.ainvoke(format_prompt(context, query))
        except Exception as e:
            logger.error(f"[ASSISTANT] Model invocation failed: {e}")
            return {
                "error": str(e),
                "current_step": STEP_ERROR,
                "thoughts": [f"Error in processing: {e}"],
            }

        user_id = state.get("user_id")
        if history is not None and user_id:
            channel.submit(
                lambda: history.append(user_id, query, text, context),
                label=f"history.append:{user_id}",
            )
            thought = "Processed query with LLM and saved conversation"
        else:
            thought = "Processed query with LLM"

        return {
            "response": text,
            "messages": [AIMessage(content=text)],
            "current_step": STEP_COMPLETE,
            "thoughts": [thought],
        }

    return process_node


def provide_assistance_node(state: Mapping[str, Any]) -> Dict[str, Any]:
    return {"response": ASSISTANCE_RESPONSE, "current_step": STEP_COMPLETE}


def error_node(state: Mapping[str, Any]) -> Dict[str, Any]:
    return {"response": APOLOGY_RESPONSE, "current_step": STEP_ERROR_HANDLED}
