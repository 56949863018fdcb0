from agentgraph.history.conversation_store import ConversationEntry, ConversationStore

__all__ = ["ConversationEntry", "ConversationStore"]
