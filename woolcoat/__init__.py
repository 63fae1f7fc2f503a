"""
woolcoat: LLM agent core.

Selects and invokes registered tools from natural-language instructions,
self-corrects failed calls, and plans multi-step tasks.
"""

__version__ = "0.1.0"
