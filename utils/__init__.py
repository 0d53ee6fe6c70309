"""Shared helpers: model lifecycle, LLM routing and logging."""
