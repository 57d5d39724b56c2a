"""CLI frontend for llmux.

Commands:
    llmux serve      Run the gateway server
    llmux resolve    Show which provider a model name routes to

Example:
    $ export OPENAI_API_KEY=sk-...
    $ llmux serve --port 3456
    $ llmux resolve google/gemini-1.5-pro
"""

from llmux.frontends.cli.main import main

__all__ = ["main"]
