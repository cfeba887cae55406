import json
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_serializer


# --- Base Pydantic Models ---
class AppBaseModel(BaseModel):
    """Base Pydantic model with common configuration."""

    model_config = {
        "frozen": False,
        "extra": "ignore",  # Clients attach extra keys (timestamps, plugin info) we don't need
        "populate_by_name": True,  # Accept both the camelCase wire name and the attribute name
    }

    @model_serializer(mode="wrap")
    def _omit_absent_optionals(self, handler):
        # Declared optional fields left at None are omitted; extra keys are emitted as they are, nulls included.
        data = handler(self)
        if not isinstance(data, dict):
            return data
        for name, field in type(self).model_fields.items():
            if field.default is None and getattr(self, name) is None:
                data.pop(name, None)
                if field.alias:
                    data.pop(field.alias, None)
                if field.serialization_alias:
                    data.pop(field.serialization_alias, None)
        return data


class OpenModel(AppBaseModel):
    """Model-generated structure: unknown keys are kept and re-emitted untouched."""

    model_config = {"extra": "allow"}


# --- Design Specification ---
# Known archetypes the prompt registry steers the model towards. The type field
# itself stays an open string so new archetypes need no schema change.
KNOWN_DESIGN_TYPES = ("login-screen", "dashboard", "landing-page")
DEFAULT_DESIGN_TYPE = "general"

# Fields owned by the server. Whatever the model puts under these keys is discarded.
RESERVED_DESIGN_FIELDS = ("id", "timestamp", "prompt", "parentId", "parent_id", "modification")


def _as_text(value: Any, default: str = "") -> str:
    """Model output is loosely typed: keep strings, render anything else as text."""
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


class Component(OpenModel):
    """One UI element inside a design. `properties` is an open bag whose shape depends on `type`."""

    id: str = ""
    type: str = "unknown"
    properties: Any = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> str:
        return _as_text(value, "unknown")

    @field_validator("properties", mode="before")
    @classmethod
    def _default_properties(cls, value: Any) -> Any:
        return {} if value is None else value


class Layout(OpenModel):
    """Canvas size and background of a design. Values are kept as the model wrote them ("100%", gradients)."""

    width: Any = 1200
    height: Any = 800
    background: Any = "#ffffff"


class DesignSpecification(OpenModel):
    """
    The canonical unit of output: one generated or modified UI design.

    Instances are immutable; a modification produces a new specification that
    points back at its parent through `parent_id`.
    """

    model_config = {"frozen": True}

    id: str
    type: str = DEFAULT_DESIGN_TYPE
    title: str = ""
    description: str = ""
    components: List[Component] = Field(default_factory=list)
    layout: Layout = Field(default_factory=Layout)
    prompt: str = ""
    timestamp: datetime
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    modification: Optional[str] = None
    figma_instructions: Optional[List[Any]] = Field(default=None, alias="figmaInstructions")

    @field_validator("type", mode="before")
    @classmethod
    def _default_design_type(cls, value: Any) -> str:
        return _as_text(value) or DEFAULT_DESIGN_TYPE

    @field_validator("title", "description", mode="before")
    @classmethod
    def _text_fields(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("layout", mode="before")
    @classmethod
    def _coerce_layout(cls, value: Any) -> Any:
        # Archetype templates describe layouts by name ("sidebar-main").
        if value is None:
            return {}
        if isinstance(value, (dict, Layout)):
            return value
        return {"name": value}

    @field_validator("figma_instructions", mode="before")
    @classmethod
    def _instruction_list(cls, value: Any) -> Any:
        if value is None or isinstance(value, list):
            return value
        return [value]

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict using wire (camelCase) names; absent optional fields are omitted."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def parse_design_payload(raw_text: str) -> Dict[str, Any]:
    """
    Parse untrusted model output into a dict ready for DesignSpecification validation.

    Raises ValueError when the text is not JSON, is not a JSON object, or carries a
    `components` field that is not a list. Server-owned fields are removed so the
    caller can stamp its own values.
    """
    payload = json.loads(raw_text)
    if not isinstance(payload, dict):
        raise ValueError(f"Design payload must be a JSON object, got {type(payload).__name__}")
    if "components" in payload and not isinstance(payload["components"], list):
        raise ValueError("Design payload field 'components' must be a list")
    for key in RESERVED_DESIGN_FIELDS:
        payload.pop(key, None)
    return payload


# --- Session Models ---
class Session(AppBaseModel):
    """Ephemeral per-connection state. Sessions reference designs by id and never own them."""

    connection_id: str = Field(alias="connectionId")
    connected_at: datetime = Field(alias="connectedAt")
    design_ids: List[str] = Field(default_factory=list, alias="designIds")
    plugin: Optional[Dict[str, Any]] = None


# --- WebSocket Message Models (Client -> Server) ---
def _require_text(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("must not be empty")
    return value


class GenerateDesignRequest(AppBaseModel):
    kind: Literal["generate-design"] = "generate-design"
    prompt: str
    design_type: Optional[str] = Field(default=None, alias="designType")
    session_id: Optional[str] = Field(default=None, alias="sessionId")

    @field_validator("prompt")
    @classmethod
    def _check_prompt(cls, value: str) -> str:
        return _require_text(value)


class ModifyDesignRequest(AppBaseModel):
    kind: Literal["modify-design"] = "modify-design"
    design_id: str = Field(alias="designId")
    prompt: str  # The edit request sent to the model
    modification: Optional[str] = None  # Short label stored on the derived design

    @field_validator("design_id", "prompt")
    @classmethod
    def _check_fields(cls, value: str) -> str:
        return _require_text(value)


class ConnectPluginRequest(OpenModel):
    """Plugin identity metadata is free-form and kept as sent."""

    kind: Literal["connect-plugin"] = "connect-plugin"


class FetchDesignRequest(AppBaseModel):
    kind: Literal["fetch-design"] = "fetch-design"
    design_id: str = Field(alias="designId")

    @field_validator("design_id")
    @classmethod
    def _check_design_id(cls, value: str) -> str:
        return _require_text(value)


# --- WebSocket Message Models (Server -> Client) ---
class WSMessage(AppBaseModel):
    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class WSConnectedMessage(WSMessage):
    kind: Literal["connected"] = "connected"
    session_id: str = Field(alias="sessionId")


class WSTypingMessage(WSMessage):
    kind: Literal["ai-typing"] = "ai-typing"
    is_typing: bool = Field(alias="isTyping")


class WSDesignResultMessage(WSMessage):
    """Reply to the requester carrying a freshly generated or modified design."""

    kind: Literal["design-generated", "design-modified"]
    success: bool = True
    design: DesignSpecification
    message: str


class WSDesignErrorMessage(WSMessage):
    kind: Literal["design-error"] = "design-error"
    success: bool = False
    message: str
    error_code: Optional[str] = Field(default=None, alias="errorCode")


class WSPluginConnectedMessage(WSMessage):
    kind: Literal["figma-connected"] = "figma-connected"
    success: bool = True


class WSPluginUpdateMessage(WSMessage):
    """Broadcast to every other listener whenever a design is created."""

    kind: Literal["figma-update"] = "figma-update"
    type: Literal["new-design", "design-modified"]
    design: DesignSpecification


class WSDesignDataMessage(WSMessage):
    kind: Literal["figma-design-data"] = "figma-design-data"
    design: DesignSpecification


class WSPluginErrorMessage(WSMessage):
    kind: Literal["figma-error"] = "figma-error"
    message: str
    error_code: Optional[str] = Field(default=None, alias="errorCode")


# --- REST Models ---
class HealthResponse(AppBaseModel):
    status: str = "OK"
    timestamp: datetime
    designs: int = 0
    connections: int = 0
    plugin_listeners: int = Field(default=0, alias="pluginListeners")


class DesignListResponse(AppBaseModel):
    designs: List[DesignSpecification] = Field(default_factory=list)


class DesignResponse(AppBaseModel):
    design: DesignSpecification


class ExportRequest(AppBaseModel):
    design_id: str = Field(alias="designId")
    file_key: str = Field(
        validation_alias=AliasChoices("externalFileKey", "figmaFileKey", "file_key"),
        serialization_alias="externalFileKey",
    )
    access_token: Optional[str] = Field(default=None, alias="accessToken")


class ExportResponse(AppBaseModel):
    success: bool = True
    message: str
    file_url: str = Field(alias="fileUrl")
    exported_at: datetime = Field(alias="exportedAt")


class FigmaExportResponse(AppBaseModel):
    """Reply shape of the legacy /export-figma route, which older plugin builds still read."""

    success: bool = True
    message: str
    figma_url: str = Field(alias="figmaUrl")
    exported_at: datetime = Field(alias="exportedAt")
