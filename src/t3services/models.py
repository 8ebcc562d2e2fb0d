"""Wire models for T3 responses.

Field names follow the service's PascalCase JSON through aliases; the
Python attributes are snake_case. Every model keeps unknown fields so a
``model_dump(by_alias=True)`` returns what the server sent, with only the
resolved ``Action`` references changed.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for models parsed from T3 JSON bodies."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        """Dump back to the service's JSON shape."""
        return self.model_dump(by_alias=True, exclude_none=True)


class AuthToken(WireModel):
    """Result of a successful login handshake."""

    value: str = Field(alias="Value", description="The authenticated username")
    additional_values: list[Any] = Field(
        default_factory=list,
        alias="AdditionalValues",
        description="Arbitrary key-value pairs attached by the server",
    )
    first_name: str | None = Field(default=None, alias="FirstName")
    last_name: str | None = Field(default=None, alias="LastName")
    phone: str | None = Field(default=None, alias="Phone")
    created: str | None = Field(default=None, alias="Created")
    user_data: str | None = Field(
        default=None, alias="UserData", description="e.g. an email address"
    )
    t3_token: str = Field(
        default="",
        alias="T3Token",
        description="Token authorizing all subsequent T3 calls",
    )

    @property
    def additional_values_header(self) -> str:
        """Comma-joined auxiliary values, empty when there are none."""
        return ",".join(str(v) for v in self.additional_values)


class Action(WireModel):
    """A named server-defined behavior."""

    name: str = Field(alias="Name")
    query: str | None = Field(default=None, alias="Query")
    confidence: float | None = Field(default=None, alias="Confidence")
    text: str | None = Field(default=None, alias="Text")
    confirmation_text: str | None = Field(default=None, alias="ConfirmationText")


class MenuItem(WireModel):
    """A service item from the touchmap, with its action resolved."""

    action: Action = Field(alias="Action")


class TouchmapResponse(WireModel):
    """Body of ``GET <search>/touch-map``."""

    actions: list[Action] = Field(default_factory=list, alias="Actions")
    service_items: list[dict[str, Any]] = Field(
        default_factory=list, alias="ServiceItems"
    )


class SearchHit(WireModel):
    """One search result.

    ``action`` holds an :class:`Action` once resolved against the touchmap.
    A ``str`` means the name was not found in the cache; None means the
    server sent no action at all.
    """

    action: Action | str | None = Field(default=None, alias="Action")

    @property
    def is_resolved(self) -> bool:
        return isinstance(self.action, Action)


class SearchResult(WireModel):
    """Body of ``GET <search>/simple``."""

    results: list[SearchHit] = Field(default_factory=list, alias="Results")


class TouchmapSnapshot(BaseModel):
    """One complete, immutable touchmap fetch."""

    model_config = ConfigDict(frozen=True)

    actions: dict[str, Action]
    menu: list[MenuItem] = Field(default_factory=list)
    refresh_time: datetime
