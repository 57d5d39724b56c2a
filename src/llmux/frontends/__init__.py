"""Frontends - User interfaces for llmux."""
