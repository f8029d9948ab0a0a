"""Pydantic schemas for counter state, HTTP payloads and push messages."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr

from dashboard.counters.constants import MESSAGE_INIT, MESSAGE_UPDATE, METRIC_NAMES

Count = Annotated[StrictInt, Field(ge=0)]


class CounterState(BaseModel):
    """Immutable point-in-time copy of every dashboard counter."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    paircode: Count = 0
    api: Count = 0
    bot: Count = 0
    cdn: Count = 0

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "CounterState":
        """Extract the typed counter fields from a stored document.

        Storage-internal keys (timestamps, ids) are discarded and missing
        counters default to zero.
        """

        return cls.model_validate({name: document.get(name, 0) for name in METRIC_NAMES})

    def as_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in METRIC_NAMES}


class SignalRequest(BaseModel):
    """Body of ``POST /signal``."""

    type: StrictStr | None = None


class SignalResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: Literal[True] = True
    new_count: int = Field(..., alias="newCount")

    def json_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True)


class ResetResponse(BaseModel):
    success: Literal[True] = True
    message: str = "Metrics reset"
    metrics: dict[str, int]


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str


class InitMessage(BaseModel):
    """Full-state push sent on connect and after a reset."""

    type: Literal["INIT"] = MESSAGE_INIT
    data: dict[str, int]

    @classmethod
    def from_state(cls, state: CounterState) -> "InitMessage":
        return cls(data=state.as_dict())

    def json_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json")


class UpdateMessage(BaseModel):
    """Single-counter delta pushed after a successful increment."""

    type: Literal["UPDATE"] = MESSAGE_UPDATE
    metric: str
    value: int

    def json_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json")
