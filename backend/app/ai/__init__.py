"""Text generation collaborator."""

from __future__ import annotations

from .openai_client import AIUnavailableError, Completion, OpenAIClient

__all__ = ["AIUnavailableError", "Completion", "OpenAIClient"]
