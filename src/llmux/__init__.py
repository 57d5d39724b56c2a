"""llmux - multi-provider chat-completion gateway.

Callers send OpenAI-style chat-completion requests; the model name's
prefix picks the provider:

    anthropic/claude-3-5-sonnet-20241022  -> Anthropic Messages API
    google/gemini-1.5-pro                 -> Google Generative Language API
    openai/gpt-4o, gpt-4o                 -> OpenAI Chat Completions

Layers:
    gateway/    Dispatcher, provider transforms, transports, HTTP server
    core/       Logging setup
    frontends/  Command-line interface
"""

__version__ = "0.1.0"
