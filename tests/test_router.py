import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from design_generator.service.generator import DesignGenerator
from design_generator.service.store import DesignStore
from design_generator.service.websocket import PLUGIN_GROUP, DesignRequestRouter

from conftest import FakeConnection, LOGIN_DESIGN, make_spec


def build_router(model_client, publisher=None):
    store = DesignStore()
    router = DesignRequestRouter(
        store=store,
        generator=DesignGenerator(model_client, timeout_s=5),
        publisher=publisher,
    )
    return router, store


@pytest.mark.asyncio
async def test_generate_replies_and_broadcasts(model_client):
    router, store = build_router(model_client)
    requester, listener = FakeConnection("req"), FakeConnection("other")
    router.open_connection(requester)
    router.open_connection(listener)

    await router.dispatch(
        requester, {"kind": "generate-design", "prompt": "Create a modern login page", "designType": "login"}
    )

    assert requester.kinds() == ["ai-typing", "ai-typing", "design-generated"]
    assert requester.sent[0]["isTyping"] is True
    result = requester.sent[-1]
    assert result["success"] is True
    assert result["design"]["type"] == "login-screen"
    assert "3 components" in result["message"]

    design_id = result["design"]["id"]
    assert store.get_design(design_id) is not None
    assert store.get_session("req").design_ids == [design_id]

    # only the other connection receives the fan-out
    assert requester.of_kind("figma-update") == []
    update = listener.of_kind("figma-update")
    assert len(update) == 1
    assert update[0]["type"] == "new-design"
    assert update[0]["design"]["id"] == design_id


@pytest.mark.asyncio
async def test_generation_timeout_emits_single_error(model_client):
    model_client.complete.side_effect = asyncio.TimeoutError()
    router, store = build_router(model_client)
    requester, listener = FakeConnection("req"), FakeConnection("other")
    router.open_connection(requester)
    router.open_connection(listener)

    await router.dispatch(requester, {"kind": "generate-design", "prompt": "Create a modern login page"})

    errors = requester.of_kind("design-error")
    assert len(errors) == 1
    assert errors[0]["success"] is False
    assert errors[0]["errorCode"] == "GENERATION_FAILED"
    assert "try again" in errors[0]["message"]
    assert "Timeout" not in errors[0]["message"]
    assert len(store) == 0
    assert listener.sent == []


@pytest.mark.asyncio
async def test_modification_failure_emits_single_error(model_client):
    router, store = build_router(model_client)
    requester, listener = FakeConnection("req"), FakeConnection("other")
    router.open_connection(requester)
    router.open_connection(listener)
    store.record_design(make_spec("orig", type="login-screen"))
    model_client.complete.return_value = "not a design"

    await router.dispatch(requester, {"kind": "modify-design", "designId": "orig", "prompt": "Make it dark"})

    assert requester.kinds() == ["ai-typing", "ai-typing", "design-error"]
    error = requester.sent[-1]
    assert error["errorCode"] == "GENERATION_FAILED"
    assert "modifying your design" in error["message"]
    assert [d.id for d in store.list_recent(10)] == ["orig"]
    assert store.get_session("req").design_ids == []
    assert listener.sent == []


@pytest.mark.asyncio
async def test_modify_unknown_design_never_calls_model(model_client):
    router, store = build_router(model_client)
    requester = FakeConnection("req")
    router.open_connection(requester)

    await router.dispatch(
        requester, {"kind": "modify-design", "designId": "missing", "prompt": "Make it blue", "modification": "blue"}
    )

    assert requester.kinds() == ["design-error"]
    assert requester.sent[0]["errorCode"] == "NOT_FOUND"
    assert requester.sent[0]["message"] == "Original design not found."
    assert model_client.complete.call_count == 0
    assert len(store) == 0


@pytest.mark.asyncio
async def test_modify_records_derived_design(model_client):
    router, store = build_router(model_client)
    requester, listener = FakeConnection("req"), FakeConnection("other")
    router.open_connection(requester)
    router.open_connection(listener)
    original = make_spec("orig", type="login-screen", components=LOGIN_DESIGN["components"])
    store.record_design(original)

    await router.dispatch(requester, {"kind": "modify-design", "designId": "orig", "prompt": "Make it dark"})

    result = requester.of_kind("design-modified")[0]
    assert result["design"]["parentId"] == "orig"
    assert result["design"]["modification"] == "Make it dark"
    assert result["design"]["id"] != "orig"
    assert len(store) == 2
    assert listener.of_kind("figma-update")[0]["type"] == "design-modified"


@pytest.mark.asyncio
async def test_invalid_request_is_rejected_before_generation(model_client):
    router, store = build_router(model_client)
    requester = FakeConnection("req")
    router.open_connection(requester)

    await router.dispatch(requester, {"kind": "generate-design", "prompt": "   "})
    await router.dispatch(requester, {"kind": "modify-design", "prompt": "no id"})

    assert requester.kinds() == ["design-error", "design-error"]
    assert all(m["errorCode"] == "VALIDATION_FAILED" for m in requester.sent)
    assert "designId" in requester.sent[1]["message"]
    assert model_client.complete.call_count == 0
    assert len(store) == 0


@pytest.mark.asyncio
async def test_unknown_kind_and_non_object_messages(model_client):
    router, _ = build_router(model_client)
    requester = FakeConnection("req")
    router.open_connection(requester)

    await router.dispatch(requester, {"kind": "launch-rocket"})
    await router.dispatch(requester, ["not", "an", "object"])
    await router.dispatch(requester, {"kind": ["weird"]})

    assert requester.kinds() == ["design-error"] * 3


@pytest.mark.asyncio
async def test_connect_plugin_joins_group(model_client):
    router, store = build_router(model_client)
    plugin = FakeConnection("plugin")
    router.open_connection(plugin)

    await router.dispatch(plugin, {"kind": "figma-connect", "pluginVersion": "2.0", "fileName": "Mockups"})

    assert plugin.kinds() == ["figma-connected"]
    assert router.manager.group_size(PLUGIN_GROUP) == 1
    assert store.get_session("plugin").plugin == {"pluginVersion": "2.0", "fileName": "Mockups"}

    await router.close_connection(plugin)
    assert router.manager.group_size(PLUGIN_GROUP) == 0
    assert store.get_session("plugin") is None


@pytest.mark.asyncio
async def test_fetch_design_found_and_missing(model_client):
    router, store = build_router(model_client)
    plugin = FakeConnection("plugin")
    router.open_connection(plugin)
    store.record_design(make_spec("known", title="Known"))

    await router.dispatch(plugin, {"kind": "fetch-design", "designId": "known"})
    await router.dispatch(plugin, {"kind": "figma-request-design", "designId": "unknown"})

    assert plugin.kinds() == ["figma-design-data", "figma-error"]
    assert plugin.sent[0]["design"]["title"] == "Known"
    assert plugin.sent[1]["message"] == "Design not found"
    assert plugin.sent[1]["errorCode"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_disconnect_during_generation_still_records_design(model_client):
    release = asyncio.Event()

    async def slow_complete(prompt):
        await release.wait()
        return json.dumps(LOGIN_DESIGN)

    model_client.complete.side_effect = slow_complete
    router, store = build_router(model_client)
    requester = FakeConnection("req")
    router.open_connection(requester)

    task = asyncio.create_task(
        router.dispatch(requester, {"kind": "generate-design", "prompt": "Login page"})
    )
    await asyncio.sleep(0)
    await router.close_connection(requester)
    release.set()
    await task

    assert len(store) == 1
    assert store.get_session("req") is None
    assert requester.of_kind("design-generated") == []


@pytest.mark.asyncio
async def test_successful_generation_is_published(model_client):
    publisher = AsyncMock()
    router, _ = build_router(model_client, publisher=publisher)
    requester = FakeConnection("req")
    router.open_connection(requester)

    await router.dispatch(requester, {"kind": "generate-design", "prompt": "Login page"})

    publisher.publish_design_event.assert_called_once()
    event_type, design = publisher.publish_design_event.call_args.args
    assert event_type == "new-design"
    assert design.prompt == "Login page"
