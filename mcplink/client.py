"""JSON-RPC client for the Model Context Protocol, independent of transport."""

from __future__ import annotations

import abc
import itertools
import threading
from collections.abc import Callable, Mapping
from typing import Any

JSONRPC_VERSION = "2.0"

Message = dict[str, Any]
NotificationHandler = Callable[[Message], None]


class ClientError(Exception):
    """Raised when a request fails locally, in transport, or on the server."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class NotInitializedError(ClientError):
    """Raised when a request other than ``initialize`` precedes initialization."""


class Transport(abc.ABC):
    """A channel that carries JSON-RPC messages to and from a server."""

    @abc.abstractmethod
    def start(self) -> None:
        """Open the channel."""

    @abc.abstractmethod
    def send_request(self, request: Message) -> Message:
        """Send a request and return the server's response message."""

    @abc.abstractmethod
    def send_notification(self, notification: Message) -> None:
        """Send a notification, which has no response."""

    @abc.abstractmethod
    def set_notification_handler(self, handler: NotificationHandler) -> None:
        """Register the callable that receives server notifications."""

    @abc.abstractmethod
    def close(self) -> None:
        """Close the channel and release its resources."""


def _paginated(cursor: str | None) -> Message:
    return {"cursor": cursor} if cursor else {}


def _drop_none(**fields: Any) -> Message:
    return {key: value for key, value in fields.items() if value is not None}


class Client:
    """An MCP client speaking to one server over a transport."""

    def __init__(
        self,
        transport: Transport | None,
        client_capabilities: Mapping[str, Any] | None = None,
    ) -> None:
        self._transport = transport
        self._client_capabilities: Message = dict(client_capabilities or {})
        self._server_capabilities: Message = {}
        self._initialized = False
        self._handlers: list[NotificationHandler] = []
        self._handlers_lock = threading.Lock()
        self._ids = itertools.count(1)
        self._ids_lock = threading.Lock()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def transport(self) -> Transport | None:
        """The underlying transport."""
        return self._transport

    @property
    def server_capabilities(self) -> Message:
        """Capabilities announced by the server during initialization."""
        return self._server_capabilities

    @property
    def client_capabilities(self) -> Message:
        """Capabilities this client was configured with."""
        return self._client_capabilities

    @property
    def initialized(self) -> bool:
        """Whether the initialize handshake has completed."""
        return self._initialized

    def start(self) -> None:
        """Open the transport and route its notifications to registered handlers."""
        if self._transport is None:
            raise ClientError("transport is nil")
        self._transport.start()
        self._transport.set_notification_handler(self._dispatch_notification)

    def close(self) -> None:
        """Close the transport."""
        if self._transport is not None:
            self._transport.close()

    def on_notification(self, handler: NotificationHandler) -> None:
        """Register a handler; handlers run in the order they were added."""
        with self._handlers_lock:
            self._handlers.append(handler)

    def _dispatch_notification(self, notification: Message) -> None:
        with self._handlers_lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler(notification)

    def _next_id(self) -> int:
        with self._ids_lock:
            return next(self._ids)

    def _send_request(self, method: str, params: Any = None) -> Any:
        if not self._initialized and method != "initialize":
            raise NotInitializedError("client not initialized")
        if self._transport is None:
            raise ClientError("transport is nil")

        request: Message = {
            "jsonrpc": JSONRPC_VERSION,
            "id": self._next_id(),
            "method": method,
        }
        if params is not None:
            request["params"] = params

        try:
            response = self._transport.send_request(request)
        except ClientError as exc:
            raise ClientError(f"transport error: {exc}") from exc
        except OSError as exc:
            raise ClientError(f"transport error: {exc}") from exc

        error = response.get("error")
        if error is not None:
            if isinstance(error, Mapping):
                raise ClientError(str(error.get("message", "")), error.get("code"))
            raise ClientError(str(error))
        return response.get("result")

    def _send_for_object(self, method: str, params: Any = None) -> Message:
        result = self._send_request(method, params)
        if not isinstance(result, dict):
            raise ClientError(
                f"failed to unmarshal response: expected an object, got {result!r}"
            )
        return result

    def initialize(
        self,
        protocol_version: str,
        client_info: Mapping[str, Any],
        capabilities: Mapping[str, Any] | None = None,
    ) -> Message:
        """Negotiate with the server and return its initialize result."""
        params = {
            "protocolVersion": protocol_version,
            "clientInfo": dict(client_info),
            "capabilities": dict(capabilities or {}),
        }
        result = self._send_for_object("initialize", params)
        self._server_capabilities = dict(result.get("capabilities") or {})

        assert self._transport is not None
        notification = {
            "jsonrpc": JSONRPC_VERSION,
            "method": "notifications/initialized",
        }
        try:
            self._transport.send_notification(notification)
        except (ClientError, OSError) as exc:
            raise ClientError(
                f"failed to send initialized notification: {exc}"
            ) from exc

        self._initialized = True
        return result

    def ping(self) -> None:
        """Check that the server responds."""
        self._send_request("ping")

    def _list_all(self, method: str, key: str, cursor: str | None) -> Message:
        result = self._send_for_object(method, _paginated(cursor))
        items = result.setdefault(key, [])
        while result.get("nextCursor"):
            page = self._send_for_object(method, _paginated(result["nextCursor"]))
            items.extend(page.get(key) or [])
            result["nextCursor"] = page.get("nextCursor", "")
        result.pop("nextCursor", None)
        return result

    def list_resources_by_page(self, cursor: str | None = None) -> Message:
        """Fetch one page of resources."""
        return self._send_for_object("resources/list", _paginated(cursor))

    def list_resources(self, cursor: str | None = None) -> Message:
        """Fetch every resource, following pagination cursors."""
        return self._list_all("resources/list", "resources", cursor)

    def list_resource_templates_by_page(self, cursor: str | None = None) -> Message:
        """Fetch one page of resource templates."""
        return self._send_for_object("resources/templates/list", _paginated(cursor))

    def list_resource_templates(self, cursor: str | None = None) -> Message:
        """Fetch every resource template, following pagination cursors."""
        return self._list_all(
            "resources/templates/list", "resourceTemplates", cursor
        )

    def read_resource(
        self, uri: str, arguments: Mapping[str, Any] | None = None
    ) -> Message:
        """Read the contents of a resource."""
        params = _drop_none(
            uri=uri, arguments=dict(arguments) if arguments is not None else None
        )
        return self._send_for_object("resources/read", params)

    def subscribe(self, uri: str) -> None:
        """Ask for notifications when a resource changes."""
        self._send_request("resources/subscribe", {"uri": uri})

    def unsubscribe(self, uri: str) -> None:
        """Stop notifications for a resource."""
        self._send_request("resources/unsubscribe", {"uri": uri})

    def list_prompts_by_page(self, cursor: str | None = None) -> Message:
        """Fetch one page of prompts."""
        return self._send_for_object("prompts/list", _paginated(cursor))

    def list_prompts(self, cursor: str | None = None) -> Message:
        """Fetch every prompt, following pagination cursors."""
        return self._list_all("prompts/list", "prompts", cursor)

    def get_prompt(
        self, name: str, arguments: Mapping[str, str] | None = None
    ) -> Message:
        """Render a prompt with the given arguments."""
        params = _drop_none(
            name=name, arguments=dict(arguments) if arguments is not None else None
        )
        return self._send_for_object("prompts/get", params)

    def list_tools_by_page(self, cursor: str | None = None) -> Message:
        """Fetch one page of tools."""
        return self._send_for_object("tools/list", _paginated(cursor))

    def list_tools(self, cursor: str | None = None) -> Message:
        """Fetch every tool, following pagination cursors."""
        return self._list_all("tools/list", "tools", cursor)

    def call_tool(self, name: str, arguments: Any = None) -> Message:
        """Invoke a tool and return its result."""
        params = _drop_none(name=name, arguments=arguments)
        return self._send_for_object("tools/call", params)

    def set_level(self, level: str) -> None:
        """Set the server's logging level."""
        self._send_request("logging/setLevel", {"level": level})

    def complete(
        self, ref: Mapping[str, Any], argument_name: str, argument_value: str
    ) -> Message:
        """Request completion values for an argument."""
        params = {
            "ref": dict(ref),
            "argument": {"name": argument_name, "value": argument_value},
        }
        return self._send_for_object("completion/complete", params)