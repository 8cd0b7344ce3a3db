# mcplink

A small client for the Model Context Protocol (MCP). It speaks JSON-RPC 2.0
over a pluggable transport. One transport is included: `StdioTransport`
launches a server as a subprocess and exchanges newline-delimited JSON
messages over the subprocess's standard input and output.

The package has no runtime dependencies.

## Quick start

```python
from mcplink.stdio import new_stdio_mcp_client

# The subprocess is started straight away; do not call start() yourself.
client = new_stdio_mcp_client("./my_mcp_server", None)

info = client.initialize(
    "2025-03-26",
    {"name": "example-client", "version": "1.0.0"},
    {},
)
print(info["serverInfo"]["name"])

client.ping()

for tool in client.list_tools()["tools"]:
    print(tool["name"])

result = client.call_tool("test-tool", {"param1": "value1"})
print(result["content"])

client.close()
```

The `env` argument of `new_stdio_mcp_client(command, env, *args)` is a mapping
of extra environment variables, merged over the current environment; `None`
adds nothing. Any further positional arguments are passed to the command.

Results are returned as plain dictionaries decoded from the server's JSON.

## Errors

- `NotInitializedError` is raised by every request method except `initialize`
  when it is called before `initialize` has succeeded.
- `ClientError` is raised when the server answers with a JSON-RPC error; its
  `message` and `code` attributes carry the server's values.
- Failures in the transport are raised as `ClientError` with a message that
  begins with `transport error:`.

`NotInitializedError` is a subclass of `ClientError`.

## Client operations

`mcplink.client.Client(transport, client_capabilities)` wraps any `Transport`:

- `start()` opens the transport and routes its notifications to the handlers
  registered with `on_notification(handler)`; handlers run in the order they
  were added.
- `initialize(protocol_version, client_info, capabilities)` performs the
  handshake, stores the server's capabilities and sends
  `notifications/initialized`.
- `ping()`
- `list_resources(cursor)` and `list_resources_by_page(cursor)`
- `list_resource_templates(cursor)` and `list_resource_templates_by_page(cursor)`
- `read_resource(uri, arguments)`
- `subscribe(uri)` and `unsubscribe(uri)`
- `list_prompts(cursor)` and `list_prompts_by_page(cursor)`
- `get_prompt(name, arguments)`
- `list_tools(cursor)` and `list_tools_by_page(cursor)`
- `call_tool(name, arguments)`
- `set_level(level)`
- `complete(ref, argument_name, argument_value)`
- `close()` closes the transport. A `Client` is also a context manager that
  closes on exit.

The `list_*` methods follow `nextCursor` until every page has been fetched and
return one combined result without a `nextCursor` key. The `*_by_page`
variants return a single page as the server sent it.

The read-only properties `transport`, `server_capabilities`,
`client_capabilities` and `initialized` expose the client's state.

## Custom transports

Subclass `mcplink.client.Transport` and implement `start`, `send_request`,
`send_notification`, `set_notification_handler` and `close`. `send_request`
receives a request dictionary and returns the response dictionary. Pass an
instance to `Client`.

## The stdio transport

`mcplink.stdio.StdioTransport(command, env, *args)` runs the command with
piped standard streams. A background thread reads responses and notifications
line by line, and lines that are not JSON objects are ignored. `close()`
closes the subprocess's standard input, waits up to five seconds for it to
exit and kills it otherwise; requests still waiting then raise `ClientError`.

`get_stderr(client)` returns the subprocess's standard error stream when the
client uses a `StdioTransport`, and `None` otherwise.

## What is not included

Only the stdio transport is provided: there is no HTTP or server-sent-events
transport, no OAuth support and no in-process connection to a server. The
package is a client only and contains no MCP server.