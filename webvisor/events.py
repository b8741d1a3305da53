from __future__ import annotations

from enum import IntEnum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class EventKind(IntEnum):
    DOM_SNAPSHOT = 0
    DOM_MUTATION = 1
    MOUSE_MOVE = 2
    MOUSE_CLICK = 3
    SCROLL = 4
    INPUT = 5
    RESIZE = 6
    PAGE_LOAD = 7
    PAGE_TRANSITION = 8
    SESSION_START = 9
    SESSION_END = 10


class MutationKind(IntEnum):
    CHILD_LIST = 0
    ATTRIBUTES = 1
    CHARACTER_DATA = 2


class WireModel(BaseModel):
    # snake_case in python, camelCase on the wire
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Size(WireModel):
    width: Optional[int] = None
    height: Optional[int] = None


class Point(WireModel):
    x: float = 0
    y: float = 0


# ---------- serialized DOM ----------

class SerializedNode(WireModel):
    kind: Literal["element", "text", "comment"]
    id: int = Field(..., description="session-scoped node identifier")
    name: str
    attrs: Optional[Dict[str, str]] = None
    children: Optional[List[SerializedNode]] = None
    value: Optional[str] = None
    selected_index: Optional[int] = None


class Doctype(WireModel):
    name: str
    public_id: str = ""
    system_id: str = ""


class AddedNode(WireModel):
    id: int
    node: SerializedNode
    previous_sibling_id: Optional[int] = None
    next_sibling_id: Optional[int] = None


# ---------- payloads ----------

class SnapshotData(WireModel):
    node: Optional[SerializedNode] = None
    doctype: Optional[Doctype] = None
    url: str = ""
    title: str = ""
    viewport: Size = Field(default_factory=Size)
    scroll: Point = Field(default_factory=Point)


class MutationData(WireModel):
    target_id: int
    target_selector: str = ""
    mutation_type: MutationKind
    added_nodes: Optional[List[AddedNode]] = None
    removed_nodes: Optional[List[int]] = None
    attribute_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None


class PointerData(WireModel):
    x: float
    y: float
    page_x: float
    page_y: float


class ClickData(PointerData):
    button: int = 0
    selector: str = ""
    tag_name: str = ""
    text_content: str = ""


class ScrollData(WireModel):
    x: float
    y: float
    max_x: float = 0
    max_y: float = 0


class InputData(WireModel):
    selector: str
    tag_name: str
    action: Optional[Literal["focus", "blur"]] = None
    input_type: Optional[str] = None
    value: Optional[str] = None
    masked: Optional[bool] = None
    selection_start: Optional[int] = None
    selection_end: Optional[int] = None
    checked: Optional[bool] = None
    name: Optional[str] = None
    selected_index: Optional[int] = None
    selected_text: Optional[str] = None


class ResizeData(WireModel):
    width: int
    height: int
    device_pixel_ratio: float = 1.0


class NavigationTiming(WireModel):
    dom_content_loaded: Optional[int] = None
    load_complete: Optional[int] = None
    first_paint: Optional[int] = None


class PageLoadData(WireModel):
    url: str
    title: str = ""
    referrer: str = ""
    timing: Optional[NavigationTiming] = None


class PageTransitionData(WireModel):
    trigger: Optional[str] = None
    from_url: Optional[str] = Field(None, alias="from")
    to: Optional[str] = None
    title: Optional[str] = None
    action: Optional[str] = None
    url: Optional[str] = None


class SessionStartData(WireModel):
    url: str
    title: str = ""
    referrer: str = ""


class SessionEndData(WireModel):
    url: str
    reason: Optional[str] = None
    events_recorded: Optional[int] = None


# ---------- events ----------

class BaseEvent(WireModel):
    timestamp: int = Field(..., description="epoch milliseconds")
    session_id: Optional[str] = None


class SnapshotEvent(BaseEvent):
    type: Literal[EventKind.DOM_SNAPSHOT] = EventKind.DOM_SNAPSHOT
    data: SnapshotData


class MutationEvent(BaseEvent):
    type: Literal[EventKind.DOM_MUTATION] = EventKind.DOM_MUTATION
    data: MutationData


class MouseMoveEvent(BaseEvent):
    type: Literal[EventKind.MOUSE_MOVE] = EventKind.MOUSE_MOVE
    data: PointerData


class MouseClickEvent(BaseEvent):
    type: Literal[EventKind.MOUSE_CLICK] = EventKind.MOUSE_CLICK
    data: ClickData


class ScrollEvent(BaseEvent):
    type: Literal[EventKind.SCROLL] = EventKind.SCROLL
    data: ScrollData


class InputEvent(BaseEvent):
    type: Literal[EventKind.INPUT] = EventKind.INPUT
    data: InputData


class ResizeEvent(BaseEvent):
    type: Literal[EventKind.RESIZE] = EventKind.RESIZE
    data: ResizeData


class PageLoadEvent(BaseEvent):
    type: Literal[EventKind.PAGE_LOAD] = EventKind.PAGE_LOAD
    data: PageLoadData


class PageTransitionEvent(BaseEvent):
    type: Literal[EventKind.PAGE_TRANSITION] = EventKind.PAGE_TRANSITION
    data: PageTransitionData


class SessionStartEvent(BaseEvent):
    type: Literal[EventKind.SESSION_START] = EventKind.SESSION_START
    data: SessionStartData


class SessionEndEvent(BaseEvent):
    type: Literal[EventKind.SESSION_END] = EventKind.SESSION_END
    data: SessionEndData


Event = Annotated[
    Union[
        SnapshotEvent,
        MutationEvent,
        MouseMoveEvent,
        MouseClickEvent,
        ScrollEvent,
        InputEvent,
        ResizeEvent,
        PageLoadEvent,
        PageTransitionEvent,
        SessionStartEvent,
        SessionEndEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(Event)


def parse_event(raw: Dict[str, Any]) -> BaseEvent:
    """Turn a wire dict back into its typed event."""
    if "type" in raw:
        raw = {**raw, "type": EventKind(raw["type"])}
    return _event_adapter.validate_python(raw)


# ---------- collector wire format ----------

class WireEvent(WireModel):
    """Event as accepted by the collector; payload is stored as sent."""
    type: EventKind
    timestamp: int
    session_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class BatchMeta(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    user_agent: Optional[str] = None
    language: Optional[str] = None
    screen: Optional[Size] = None
    viewport: Optional[Size] = None
    url: Optional[str] = None
    title: Optional[str] = None
    referrer: Optional[str] = None
    timezone: Optional[str] = None
    fingerprint: Optional[str] = None


class EventBatch(WireModel):
    session_id: str = Field(..., min_length=1)
    events: List[WireEvent]
    timestamp: Optional[int] = None
    meta: BatchMeta = Field(default_factory=BatchMeta)
