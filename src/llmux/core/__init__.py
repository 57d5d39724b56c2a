"""Core - process-wide plumbing shared by the gateway and its frontends."""

from .logging_config import JsonFormatter, configure_logging

__all__ = ["JsonFormatter", "configure_logging"]
