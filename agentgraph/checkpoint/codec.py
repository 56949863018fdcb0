"""
State codec - converts engine state to JSON-safe documents and back.
LangChain message lists are encoded with messages_to_dict / messages_from_dict;
a list mixing messages with plain values tags each message entry on its own.
Everything else goes through json with str() for unknown types.
"""

import json
from typing import Any, Dict, Mapping

from langchain_core.messages import BaseMessage, message_to_dict, messages_from_dict, messages_to_dict

MESSAGES_TAG = "__lc_messages__"
MESSAGE_TAG = "__lc_message__"


def _is_message_list(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(m, BaseMessage) for m in value)


def _has_messages(value: Any) -> bool:
    return isinstance(value, list) and any(isinstance(m, BaseMessage) for m in value)


def _encode_entry(value: Any) -> Any:
    if isinstance(value, BaseMessage):
        return {MESSAGE_TAG: message_to_dict(value)}
    return json.loads(json.dumps(value, default=str))


def _decode_entry(value: Any) -> Any:
    if isinstance(value, dict) and set(value) == {MESSAGE_TAG}:
        return messages_from_dict([value[MESSAGE_TAG]])[0]
    return value


def encode_state(state: Mapping[str, Any]) -> Dict[str, Any]:
    encoded: Dict[str, Any] = {}
    for key, value in state.items():
        if _is_message_list(value):
            encoded[key] = {MESSAGES_TAG: messages_to_dict(value)}
        elif _has_messages(value):
            encoded[key] = [_encode_entry(v) for v in value]
        else:
            encoded[key] = _encode_entry(value)
    return encoded


def decode_state(document: Mapping[str, Any]) -> Dict[str, Any]:
    decoded: Dict[str, Any] = {}
    for key, value in document.items():
        if isinstance(value, dict) and set(value) == {MESSAGES_TAG}:
            decoded[key] = messages_from_dict(value[MESSAGES_TAG])
        elif isinstance(value, list):
            decoded[key] = [_decode_entry(v) for v in value]
        else:
            decoded[key] = value
    return decoded
