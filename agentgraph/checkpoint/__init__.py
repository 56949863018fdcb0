"""Checkpoint Adapter - persisted workflow instances for resumable runs"""
from .codec import decode_state, encode_state
from .store import (
    CheckpointAck,
    CheckpointError,
    CheckpointStore,
    InMemoryCheckpointStore,
    RedisCheckpointStore,
    SqlCheckpointStore,
    WorkflowInstance,
    create_checkpoint_store,
)

__all__ = [
    "encode_state",
    "decode_state",
    "CheckpointAck",
    "CheckpointError",
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "RedisCheckpointStore",
    "SqlCheckpointStore",
    "WorkflowInstance",
    "create_checkpoint_store",
]
