"""Data models for Remote Operations Map (ROM) documents."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RomAction(str, Enum):
    """Table operation to resolve from a ROM."""

    NONE = "none"
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class RomQueryParam(BaseModel):
    """One entry of an operation's query list."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    value: str = ""
    type: str = ""

    @field_validator("name", "value", "type", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        """Accept numbers and null where text is expected."""
        return _as_text(v)


class RomOperation(BaseModel):
    """How one action of a table maps onto the remote API."""

    model_config = ConfigDict(extra="allow")

    method: str = ""
    url: str = ""
    query: list[RomQueryParam] = Field(default_factory=list)

    @field_validator("method", "url", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        """Accept numbers and null where text is expected."""
        return _as_text(v)

    @field_validator("query", mode="before")
    @classmethod
    def ignore_non_list(cls, v: Any) -> Any:
        """Treat a missing or non-list query as empty."""
        return v if isinstance(v, list) else []


class RomContext(BaseModel):
    """Resolved target of a table operation.

    url and method are None when only the ROM itself was validated
    (RomAction.NONE).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str | None = None
    method: str | None = None
    document: dict[str, Any] = Field(default_factory=dict)
