"""
Chat model client - the only surface nodes use to talk to a language model.
Wraps a LangChain chat model so swapping providers never changes node logic.
"""

import logging
import time
from typing import Any

from langchain_core.messages import HumanMessage

logger = logging.getLogger(__name__)


def _content_text(response: Any) -> str:
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, list):
        # content blocks (e.g. Anthropic): keep the text parts
        parts = []
        for block in content:
            if isinstance(block, dict):
                parts.append(str(block.get("text", "")))
            else:
                parts.append(str(block))
        return "".join(parts)
    return str(content)


class ChatModelClient:
    """invoke(prompt_text) -> response_text over any LangChain chat model."""

    def __init__(self, model: Any, provider: str = "", model_name: str = ""):
        self._model = model
        self.provider = provider
        self.model_name = model_name

    @property
    def model(self) -> Any:
        return self._model

    def invoke(self, prompt_text: str) -> str:
        start = time.time()
        response = self._model.invoke([HumanMessage(content=prompt_text)])
        logger.debug(
            f"[PROVIDER] {self.provider}/{self.model_name} responded in {round((time.time() - start) * 1000, 1)}ms"
        )
        return _content_text(response)

    async def ainvoke(self, prompt_text: str) -> str:
        start = time.time()
        response = await self._model.ainvoke([HumanMessage(content=prompt_text)])
        logger.debug(
            f"[PROVIDER] {self.provider}/{self.model_name} responded in {round((time.time() - start) * 1000, 1)}ms"
        )
        return _content_text(response)
