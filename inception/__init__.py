"""
Inception — Delegating Work to an External Completion Process.

This package exposes a small MCP tool server that hands free-form
natural-language tasks to an external text-completion CLI (``llm`` by
default) and orchestrates batches of those delegations.

Layers (bottom to top):
    1. Delegate channel (one subprocess per task)
    2. Bounded parallel dispatcher (chunked fan-out / fan-in)
    3. Sequential map-reduce reducer
    4. MCP stdio server and CLI
"""

__version__ = "0.1.0"
