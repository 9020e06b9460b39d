"""
Admission Entities

Records returned to callers once a reservation has been durably counted,
and snapshots of the current window usage.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .value_objects import LimiterKey


class RecordKind(str, Enum):
    """Which side of a chat exchange a record accounts for."""

    INPUT = "input"
    OUTPUT = "output"


class AdmissionLoad(BaseModel):
    """Window load observed just before a reservation was written."""

    model_config = ConfigDict(frozen=True)

    tokens: float = Field(..., ge=0, description="Token usage as a fraction of the limit")
    requests: float = Field(
        ..., ge=0, description="Request usage as a fraction of the limit"
    )


class AdmissionRecord(BaseModel):
    """
    Proof of a counted reservation.

    Input records are required to release a reservation through
    deregistration; output records are informational.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Decimal time-ordered identifier")
    kind: RecordKind
    token_count: int = Field(..., ge=0)
    resource: str
    subaccount: str
    load: Optional[AdmissionLoad] = None

    @property
    def limiter_key(self) -> LimiterKey:
        return LimiterKey(self.resource, self.subaccount)

    @property
    def score(self) -> int:
        return int(self.id)


class WindowUsage(BaseModel):
    """Surviving consumption for one resource/subaccount after a prune."""

    model_config = ConfigDict(frozen=True)

    resource: str
    subaccount: str
    input_tokens: int = Field(0, ge=0)
    output_tokens: int = Field(0, ge=0)
    requests: int = Field(0, ge=0)
    token_limit: int = Field(..., ge=1)
    request_limit: int = Field(..., ge=1)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def load(self) -> AdmissionLoad:
        return AdmissionLoad(
            tokens=self.total_tokens / self.token_limit,
            requests=self.requests / self.request_limit,
        )
