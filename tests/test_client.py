import pytest

from mcplink.client import Client, ClientError, NotInitializedError, Transport

SERVER_RESULT = {
    "protocolVersion": "1.0",
    "serverInfo": {"name": "srv", "version": "1.0.0"},
    "capabilities": {"tools": {"listChanged": True}},
}


class FakeTransport(Transport):
    def __init__(self, results=None, errors=None, fail=None):
        self.results = dict(results or {})
        self.results.setdefault("initialize", SERVER_RESULT)
        self.errors = dict(errors or {})
        self.fail = fail
        self.requests = []
        self.notifications = []
        self.handler = None
        self.started = False
        self.closed = False

    def start(self):
        self.started = True

    def send_request(self, request):
        self.requests.append(request)
        if self.fail is not None:
            raise self.fail
        method = request["method"]
        if method in self.errors:
            return {"jsonrpc": "2.0", "id": request["id"], "error": self.errors[method]}
        value = self.results[method]
        if callable(value):
            value = value(request.get("params"))
        return {"jsonrpc": "2.0", "id": request["id"], "result": value}

    def send_notification(self, notification):
        self.notifications.append(notification)

    def set_notification_handler(self, handler):
        self.handler = handler

    def close(self):
        self.closed = True


def ready_client(**kwargs):
    transport = FakeTransport(**kwargs)
    client = Client(transport)
    client.start()
    client.initialize("1.0", {"name": "test-client", "version": "1.0.0"})
    return client, transport


def test_start_without_transport_fails():
    with pytest.raises(ClientError, match="transport is nil"):
        Client(None).start()


def test_request_before_initialize_fails():
    transport = FakeTransport(results={"tools/list": {"tools": []}})
    client = Client(transport)
    client.start()
    with pytest.raises(NotInitializedError):
        client.list_tools()
    assert transport.requests == []


def test_initialize_sends_params_and_notification():
    client, transport = ready_client()
    first = transport.requests[0]
    assert first["method"] == "initialize"
    assert first["jsonrpc"] == "2.0"
    assert first["params"] == {
        "protocolVersion": "1.0",
        "clientInfo": {"name": "test-client", "version": "1.0.0"},
        "capabilities": {},
    }
    assert transport.notifications == [
        {"jsonrpc": "2.0", "method": "notifications/initialized"}
    ]
    assert client.server_capabilities == SERVER_RESULT["capabilities"]
    assert client.initialized


def test_request_ids_increase():
    client, transport = ready_client(results={"ping": {}})
    client.ping()
    client.ping()
    ids = [request["id"] for request in transport.requests]
    assert ids == sorted(set(ids))
    assert len(ids) == 3
    assert "params" not in transport.requests[1]


def test_list_tools_follows_cursors():
    pages = {
        None: {"tools": [{"name": "a"}], "nextCursor": "p2"},
        "p2": {"tools": [{"name": "b"}], "nextCursor": "p3"},
        "p3": {"tools": [{"name": "c"}]},
    }
    client, transport = ready_client(
        results={"tools/list": lambda params: pages[params.get("cursor")]}
    )
    result = client.list_tools()
    assert [tool["name"] for tool in result["tools"]] == ["a", "b", "c"]
    assert "nextCursor" not in result
    sent = [r["params"] for r in transport.requests if r["method"] == "tools/list"]
    assert sent == [{}, {"cursor": "p2"}, {"cursor": "p3"}]


def test_list_by_page_keeps_cursor():
    client, _ = ready_client(
        results={"prompts/list": {"prompts": [{"name": "x"}], "nextCursor": "n"}}
    )
    page = client.list_prompts_by_page()
    assert page["nextCursor"] == "n"
    assert page["prompts"] == [{"name": "x"}]


def test_list_resources_and_templates_merge():
    resource_pages = {
        None: {"resources": [{"uri": "a://1"}], "nextCursor": "k"},
        "k": {"resources": [{"uri": "a://2"}]},
    }
    client, _ = ready_client(
        results={
            "resources/list": lambda p: resource_pages[p.get("cursor")],
            "resources/templates/list": {"resourceTemplates": [{"uriTemplate": "t"}]},
        }
    )
    assert [r["uri"] for r in client.list_resources()["resources"]] == [
        "a://1",
        "a://2",
    ]
    templates = client.list_resource_templates()
    assert templates["resourceTemplates"] == [{"uriTemplate": "t"}]


def test_server_error_raises_with_message_and_code():
    client, _ = ready_client(
        errors={"tools/call": {"code": -32601, "message": "Method not found"}}
    )
    with pytest.raises(ClientError) as info:
        client.call_tool("missing")
    assert str(info.value) == "Method not found"
    assert info.value.code == -32601


def test_transport_error_is_wrapped():
    transport = FakeTransport(fail=OSError("pipe closed"))
    client = Client(transport)
    client.start()
    with pytest.raises(ClientError, match="transport error") as info:
        client.initialize("1.0", {"name": "c", "version": "1"})
    assert isinstance(info.value.__cause__, OSError)
    assert not client.initialized


def test_non_object_result_is_rejected():
    client, _ = ready_client(results={"tools/call": ["not", "an", "object"]})
    with pytest.raises(ClientError, match="failed to unmarshal"):
        client.call_tool("t")


def test_call_tool_get_prompt_read_resource_params():
    echo = lambda params: {"echo": params}
    client, _ = ready_client(
        results={"tools/call": echo, "prompts/get": echo, "resources/read": echo}
    )
    assert client.call_tool("t", {"p": "v"})["echo"] == {
        "name": "t",
        "arguments": {"p": "v"},
    }
    assert client.get_prompt("pr")["echo"] == {"name": "pr"}
    assert client.read_resource("r://x")["echo"] == {"uri": "r://x"}


def test_subscribe_set_level_and_complete_params():
    client, transport = ready_client(
        results={
            "resources/subscribe": {},
            "resources/unsubscribe": {},
            "logging/setLevel": {},
            "completion/complete": lambda p: {"completion": {"values": [p]}},
        }
    )
    client.subscribe("r://a")
    client.unsubscribe("r://a")
    client.set_level("info")
    result = client.complete({"type": "ref/prompt", "name": "p"}, "arg", "val")
    assert result["completion"]["values"][0] == {
        "ref": {"type": "ref/prompt", "name": "p"},
        "argument": {"name": "arg", "value": "val"},
    }
    sent = [(r["method"], r.get("params")) for r in transport.requests[1:4]]
    assert sent == [
        ("resources/subscribe", {"uri": "r://a"}),
        ("resources/unsubscribe", {"uri": "r://a"}),
        ("logging/setLevel", {"level": "info"}),
    ]


def test_notification_handlers_run_in_order():
    transport = FakeTransport()
    client = Client(transport)
    seen = []
    client.on_notification(lambda n: seen.append(("first", n["method"])))
    client.on_notification(lambda n: seen.append(("second", n["method"])))
    client.start()
    transport.handler({"jsonrpc": "2.0", "method": "notifications/progress"})
    assert seen == [
        ("first", "notifications/progress"),
        ("second", "notifications/progress"),
    ]


def test_context_manager_closes_transport_and_keeps_capabilities():
    transport = FakeTransport()
    with Client(transport, {"roots": {"listChanged": True}}) as client:
        assert client.client_capabilities == {"roots": {"listChanged": True}}
        assert client.transport is transport
    assert transport.closed