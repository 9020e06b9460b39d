"""
Token estimation collaborator.
"""

from .estimator import (
    ChatCompletion,
    ChatMessage,
    ChatPrompt,
    CompletionChoice,
    FunctionCall,
    HeuristicTokenEstimator,
    TokenEstimator,
    coerce_completion,
    coerce_prompt,
)

__all__ = [
    "ChatCompletion",
    "ChatMessage",
    "ChatPrompt",
    "CompletionChoice",
    "FunctionCall",
    "HeuristicTokenEstimator",
    "TokenEstimator",
    "coerce_completion",
    "coerce_prompt",
]
