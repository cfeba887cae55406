import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from design_generator.models.schemas import DesignSpecification

LOGIN_DESIGN = {
    "type": "login-screen",
    "title": "Modern Login",
    "description": "A clean login page",
    "components": [
        {"id": "email", "type": "input", "properties": {"label": "Email"}},
        {"id": "password", "type": "input", "properties": {"label": "Password"}},
        {"id": "submit", "type": "button", "properties": {"text": "Sign In", "style": "primary"}},
    ],
    "layout": {"width": 1440, "height": 900, "background": "#f5f5f5"},
    "figmaInstructions": ["Create a frame", "Add the inputs"],
}


class FakeConnection:
    """Stands in for a WebSocket client connection and records what it is sent."""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        self.active = True
        self.sent = []

    async def send_message(self, message):
        await self.send_json_str(message.to_json())

    async def send_json_str(self, json_str):
        if self.active:
            self.sent.append(json.loads(json_str))

    async def close(self):
        self.active = False

    def kinds(self):
        return [m["kind"] for m in self.sent]

    def of_kind(self, kind):
        return [m for m in self.sent if m["kind"] == kind]


def make_spec(spec_id: str = "spec-1", **fields) -> DesignSpecification:
    data = {"id": spec_id, "timestamp": datetime.now(timezone.utc), **fields}
    return DesignSpecification.model_validate(data)


@pytest.fixture
def model_client():
    client = AsyncMock()
    client.complete.return_value = json.dumps(LOGIN_DESIGN)
    return client
