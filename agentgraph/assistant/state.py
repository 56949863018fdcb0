"""
Assistant state channels.
"""

from typing import Optional

from agentgraph.config.settings import Settings, settings as default_settings
from agentgraph.engine.state import MergeStrategy, StateSchema

# next-step markers written to `current_step`
STEP_START = "start"
STEP_FETCH_USER = "fetch_user_data"
STEP_FETCH_PRODUCT = "fetch_product_data"
STEP_ASSIST = "provide_assistance"
STEP_PROCESS = "process"
STEP_ERROR = "error"
STEP_COMPLETE = "complete"
STEP_ERROR_HANDLED = "error_handled"


def build_schema(app_settings: Optional[Settings] = None) -> StateSchema:
    """The eight assistant channels, log retention taken from settings."""
    cfg = app_settings or default_settings
    schema = StateSchema()
    schema.define_channel(
        "messages", MergeStrategy.APPEND, default=list,
        max_items=cfg.message_log_limit, description="Conversation message log",
    )
    schema.define_channel("query", MergeStrategy.REPLACE, default=str, description="Current user query")
    schema.define_channel("response", MergeStrategy.REPLACE, default=str, description="Assistant response")
    schema.define_channel(
        "context", MergeStrategy.SHALLOW_MERGE, default=dict,
        description="Context bag filled by the lookup nodes",
    )
    schema.define_channel(
        "current_step", MergeStrategy.REPLACE, default=lambda: STEP_START,
        description="Next-step marker",
    )
    schema.define_channel("error", MergeStrategy.REPLACE, description="Error message, None when healthy")
    schema.define_channel(
        "thoughts", MergeStrategy.APPEND, default=list,
        max_items=cfg.trace_log_limit, description="Execution trace",
    )
    schema.define_channel("user_id", MergeStrategy.REPLACE, description="Identity key for history")
    return schema
