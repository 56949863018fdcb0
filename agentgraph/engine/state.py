"""
State Schema - ordered channels with per-channel merge strategies.

Every channel has a default factory and a reducer. A node's partial result is
merged channel by channel; channels absent from the partial keep their value
untouched and their reducer is not called.
"""

from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional
from pydantic import BaseModel, ConfigDict, Field

from agentgraph.engine.exceptions import GraphConfigError, UnknownChannelError

Reducer = Callable[[Any, Any], Any]


class MergeStrategy(str, Enum):
    REPLACE = "replace"              # last writer wins
    APPEND = "append"                # concatenate, insertion order preserved
    SHALLOW_MERGE = "shallow_merge"  # {**previous, **incoming}
    CUSTOM = "custom"                # caller-supplied reducer


def replace_reducer(previous: Any, incoming: Any) -> Any:
    return incoming


def append_reducer(previous: Any, incoming: Any) -> List[Any]:
    items = incoming if isinstance(incoming, (list, tuple)) else [incoming]
    return list(previous or []) + list(items)


def shallow_merge_reducer(previous: Any, incoming: Any) -> Dict[str, Any]:
    return {**(previous or {}), **(incoming or {})}


_STRATEGY_REDUCERS: Dict[MergeStrategy, Reducer] = {
    MergeStrategy.REPLACE: replace_reducer,
    MergeStrategy.APPEND: append_reducer,
    MergeStrategy.SHALLOW_MERGE: shallow_merge_reducer,
}


class Channel(BaseModel):
    """A named slot in the shared state with its own merge rule."""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    strategy: MergeStrategy = MergeStrategy.REPLACE
    default_factory: Callable[[], Any] = Field(default=lambda: None)
    reducer: Optional[Reducer] = None
    max_items: Optional[int] = None  # retention limit for append channels
    description: str = ""

    def default(self) -> Any:
        return self.default_factory()

    def reduce(self, previous: Any, incoming: Any) -> Any:
        fn = self.reducer if self.strategy == MergeStrategy.CUSTOM else _STRATEGY_REDUCERS[self.strategy]
        merged = fn(previous, incoming)
        if self.strategy == MergeStrategy.APPEND and self.max_items is not None:
            # keep the newest entries
            merged = merged[-self.max_items:] if self.max_items > 0 else []
        return merged


class StateSchema:
    """
    Ordered mapping of channel name -> Channel.

    Usage:
        schema = StateSchema()
        schema.define_channel("messages", MergeStrategy.APPEND, default=list)
        schema.define_channel("query", MergeStrategy.REPLACE, default=str)
        state = schema.merge(schema.initial_state(), {"query": "hi"})
    """

    def __init__(self):
        self._channels: Dict[str, Channel] = {}

    def define_channel(
        self,
        name: str,
        strategy: Any = MergeStrategy.REPLACE,
        default: Optional[Callable[[], Any]] = None,
        max_items: Optional[int] = None,
        description: str = "",
    ) -> Channel:
        """
        Declare a channel.

        `strategy` is a MergeStrategy (or its string value) or a callable
        reducer `(previous, incoming) -> merged`, which selects CUSTOM.
        """
        if name in self._channels:
            raise GraphConfigError(f"Duplicate channel name: '{name}'")

        reducer: Optional[Reducer] = None
        if callable(strategy) and not isinstance(strategy, MergeStrategy):
            reducer = strategy
            strategy = MergeStrategy.CUSTOM
        else:
            strategy = MergeStrategy(strategy)
            if strategy == MergeStrategy.CUSTOM:
                raise GraphConfigError(f"Channel '{name}': CUSTOM strategy requires a reducer callable")

        if max_items is not None and strategy != MergeStrategy.APPEND:
            raise GraphConfigError(f"Channel '{name}': max_items only applies to APPEND channels")

        channel = Channel(
            name=name,
            strategy=strategy,
            default_factory=default or (lambda: None),
            reducer=reducer,
            max_items=max_items,
            description=description,
        )
        self._channels[name] = channel
        return channel

    # ── Lookup ────────────────────────────────────────────────────────

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    def __iter__(self) -> Iterator[str]:
        return iter(self._channels)

    def __len__(self) -> int:
        return len(self._channels)

    @property
    def channels(self) -> List[Channel]:
        return list(self._channels.values())

    def get(self, name: str) -> Channel:
        try:
            return self._channels[name]
        except KeyError:
            raise UnknownChannelError(
                f"Unknown channel '{name}'. Declared: {list(self._channels)}"
            ) from None

    def unknown_keys(self, keys) -> List[str]:
        return [k for k in keys if k not in self._channels]

    # ── State operations ─────────────────────────────────────────────

    def initial_state(self) -> Dict[str, Any]:
        """Fresh state with every channel seeded from its default factory."""
        return {name: ch.default() for name, ch in self._channels.items()}

    def complete(self, snapshot: Mapping[str, Any]) -> Dict[str, Any]:
        """Fill channels missing from a stored snapshot with their defaults."""
        unknown = self.unknown_keys(snapshot)
        if unknown:
            raise UnknownChannelError(f"Snapshot contains unknown channels: {unknown}")
        state = self.initial_state()
        state.update(snapshot)
        return state

    def merge(self, state: Mapping[str, Any], partial: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Return a new state with `partial` merged in through each channel's reducer."""
        merged = dict(state)
        if not partial:
            return merged
        unknown = self.unknown_keys(partial)
        if unknown:
            raise UnknownChannelError(
                f"Partial state contains unknown channels: {unknown}. Declared: {list(self._channels)}"
            )
        for name, incoming in partial.items():
            merged[name] = self._channels[name].reduce(merged.get(name), incoming)
        return merged
