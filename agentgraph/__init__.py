"""agentgraph - stateful node-graph workflow engine and the AI assistant built on it"""

__version__ = "0.1.0"
