"""Transport that talks to an MCP server running as a subprocess over stdio."""

from __future__ import annotations

import json
import os
import queue
import subprocess
import threading
from collections.abc import Mapping
from typing import IO, Any

from mcplink.client import Client, ClientError, Message, NotificationHandler, Transport

_CLOSED = object()


class StdioTransport(Transport):
    """Runs a command and exchanges newline-delimited JSON-RPC over its pipes."""

    def __init__(self, command: str, env: Mapping[str, str] | None, *args: str) -> None:
        self.command = command
        self.env = dict(env or {})
        self.args = list(args)
        self._process: subprocess.Popen[str] | None = None
        self._reader: threading.Thread | None = None
        self._pending: dict[Any, queue.Queue[Any]] = {}
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._handler: NotificationHandler | None = None
        self._eof = False

    @property
    def stderr(self) -> IO[str] | None:
        """The subprocess's standard error stream, once started."""
        return self._process.stderr if self._process is not None else None

    def start(self) -> None:
        """Launch the subprocess; calling it again while running does nothing."""
        with self._lock:
            if self._process is not None:
                return
            try:
                self._process = subprocess.Popen(
                    [self.command, *self.args],
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    env={**os.environ, **self.env},
                    text=True,
                    encoding="utf-8",
                    bufsize=1,
                )
            except OSError as exc:
                raise ClientError(f"failed to start command: {exc}") from exc
            self._eof = False
            self._reader = threading.Thread(target=self._read_loop, daemon=True)
            self._reader.start()

    def _read_loop(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        for line in self._process.stdout:
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except ValueError:
                continue
            if isinstance(message, dict):
                self._dispatch(message)
        self._fail_pending()

    def _dispatch(self, message: Message) -> None:
        msg_id = message.get("id")
        if msg_id is not None and ("result" in message or "error" in message):
            with self._lock:
                waiter = self._pending.pop(msg_id, None)
            if waiter is not None:
                waiter.put(message)
        elif "method" in message and "id" not in message:
            handler = self._handler
            if handler is not None:
                handler(message)

    def _fail_pending(self) -> None:
        with self._lock:
            self._eof = True
            waiters = list(self._pending.values())
            self._pending.clear()
        for waiter in waiters:
            waiter.put(_CLOSED)

    def _write(self, message: Message) -> None:
        if self._process is None or self._process.stdin is None:
            raise ClientError("stdio transport not started")
        line = json.dumps(message, separators=(",", ":"))
        try:
            with self._write_lock:
                self._process.stdin.write(line + "\n")
                self._process.stdin.flush()
        except (OSError, ValueError) as exc:
            raise ClientError(f"failed to write message: {exc}") from exc

    def send_request(self, request: Message) -> Message:
        """Write a request and block until the matching response arrives."""
        if self._process is None:
            raise ClientError("stdio transport not started")
        waiter: queue.Queue[Any] = queue.Queue(maxsize=1)
        request_id = request["id"]
        with self._lock:
            if self._eof:
                raise ClientError("stdio transport closed")
            self._pending[request_id] = waiter
        try:
            self._write(request)
        except ClientError:
            with self._lock:
                self._pending.pop(request_id, None)
            raise
        response = waiter.get()
        if response is _CLOSED:
            raise ClientError("stdio transport closed before response")
        return response

    def send_notification(self, notification: Message) -> None:
        """Write a notification without waiting for anything back."""
        self._write(notification)

    def set_notification_handler(self, handler: NotificationHandler) -> None:
        """Register the callable that receives server notifications."""
        self._handler = handler

    def close(self) -> None:
        """Close stdin, wait for the subprocess to exit, and stop reading."""
        process = self._process
        if process is None:
            return
        if process.stdin is not None:
            try:
                process.stdin.close()
            except OSError:
                pass
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        if self._reader is not None:
            self._reader.join(timeout=5)
        if process.stdout is not None:
            process.stdout.close()
        self._fail_pending()


def new_stdio_mcp_client(command: str, env: Mapping[str, str] | None, *args: str) -> Client:
    """Launch a server subprocess and return a started client connected to it."""
    transport = StdioTransport(command, env, *args)
    client = Client(transport)
    try:
        client.start()
    except ClientError as exc:
        raise ClientError(f"failed to start stdio transport: {exc}") from exc
    return client


def get_stderr(client: Client) -> IO[str] | None:
    """Return the server's stderr stream, or None if the client is not on stdio."""
    transport = client.transport
    if isinstance(transport, StdioTransport):
        return transport.stderr
    return None