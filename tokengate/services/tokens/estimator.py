"""
Token Estimation

Payload models for chat prompts and completions, the estimator protocol
the admission engine consumes, and a character-based default estimator.

Exact tokenization is model specific; plug a tokenizer-backed estimator
into the engine when exact counts matter. Estimators may be sync or async.
"""

import json
import math
from typing import (
    Any,
    Awaitable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FunctionCall(BaseModel):
    """Function call emitted by the model."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    arguments: Optional[str] = None


class ChatMessage(BaseModel):
    """One chat message in a prompt or completion."""

    model_config = ConfigDict(extra="ignore")

    role: Optional[str] = None
    content: Optional[str] = None
    name: Optional[str] = None
    function_call: Optional[FunctionCall] = None


class ChatPrompt(BaseModel):
    """Chat request body as sent to the completion API."""

    model_config = ConfigDict(extra="ignore")

    messages: List[ChatMessage] = Field(default_factory=list)
    functions: Optional[List[Dict[str, Any]]] = None


class CompletionChoice(BaseModel):
    """Completion choice; standard responses carry message, streams carry delta."""

    model_config = ConfigDict(extra="ignore")

    message: Optional[ChatMessage] = None
    delta: Optional[ChatMessage] = None

    @property
    def body(self) -> Optional[ChatMessage]:
        return self.message if self.message is not None else self.delta


class ChatCompletion(BaseModel):
    """Completion response body or one streamed chunk."""

    model_config = ConfigDict(extra="ignore")

    choices: List[CompletionChoice] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_bare_choices(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            return {"choices": list(data)}
        return data


PromptPayload = Union[str, ChatPrompt, Mapping[str, Any], Sequence[Mapping[str, Any]]]
CompletionPayload = Union[str, ChatCompletion, Mapping[str, Any], Sequence[Mapping[str, Any]]]


def coerce_prompt(payload: PromptPayload) -> Union[str, ChatPrompt]:
    """Normalize a prompt payload; raises pydantic ValidationError if malformed."""
    if isinstance(payload, (str, ChatPrompt)):
        return payload
    if isinstance(payload, Mapping):
        return ChatPrompt.model_validate(dict(payload))
    return ChatPrompt(messages=[ChatMessage.model_validate(m) for m in payload])


def coerce_completion(payload: CompletionPayload) -> Union[str, ChatCompletion]:
    """Normalize a completion payload; raises pydantic ValidationError if malformed."""
    if isinstance(payload, (str, ChatCompletion)):
        return payload
    if isinstance(payload, Mapping):
        return ChatCompletion.model_validate(dict(payload))
    return ChatCompletion.model_validate(list(payload))


@runtime_checkable
class TokenEstimator(Protocol):
    """Maps a payload to an integer token cost."""

    def estimate_prompt(self, payload: PromptPayload) -> Union[int, Awaitable[int]]:
        ...

    def estimate_completion(
        self, payload: CompletionPayload
    ) -> Union[int, Awaitable[int]]:
        ...


# Per-message framing tokens added by the chat format
MESSAGE_OVERHEAD = 3
NAME_OVERHEAD = 1
REPLY_PRIMING = 3
FUNCTIONS_OVERHEAD = 9


class HeuristicTokenEstimator:
    """
    Character-ratio estimator.

    Approximates chat-format framing (per-message overhead, reply
    priming, function definitions) on top of chars / chars_per_token.
    """

    def __init__(self, chars_per_token: float = 4.0):
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be > 0")
        self._chars_per_token = chars_per_token

    def text_tokens(self, text: Optional[str]) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self._chars_per_token)

    def _function_call_tokens(self, call: Optional[FunctionCall]) -> int:
        if call is None:
            return 0
        return self.text_tokens(call.name) + self.text_tokens(call.arguments)

    def estimate_prompt(self, payload: PromptPayload) -> int:
        prompt = coerce_prompt(payload)
        if isinstance(prompt, str):
            return self.text_tokens(prompt)

        total = REPLY_PRIMING
        for message in prompt.messages:
            total += MESSAGE_OVERHEAD
            total += self.text_tokens(message.content)
            if message.name:
                total += NAME_OVERHEAD + self.text_tokens(message.name)
            total += self._function_call_tokens(message.function_call)

        if prompt.functions:
            total += FUNCTIONS_OVERHEAD + self.text_tokens(
                json.dumps(prompt.functions, separators=(",", ":"))
            )
        return total

    def estimate_completion(self, payload: CompletionPayload) -> int:
        completion = coerce_completion(payload)
        if isinstance(completion, str):
            return self.text_tokens(completion)

        total = 0
        for choice in completion.choices:
            body = choice.body
            if body is None:
                continue
            total += self.text_tokens(body.content)
            total += self._function_call_tokens(body.function_call)
        return total
