"""MCP server communication over HTTP (JSON or event-stream bodies) and stdio."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import shutil
from typing import Any, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"


class MCPError(Exception):
    """Base class for provider communication failures."""


class MCPTransportError(MCPError):
    """Raised when the network or the server process fails."""


class MCPTimeoutError(MCPTransportError):
    """Raised when a request exceeds its deadline."""


class MCPHTTPError(MCPTransportError):
    """Raised on a non-2xx HTTP status."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status

    @property
    def is_auth_error(self) -> bool:
        return self.status in (401, 403)


class MCPProtocolError(MCPError):
    """Raised when a response body is not a JSON-RPC envelope."""


class MCPRPCError(MCPError):
    """Raised when a well-formed envelope carries an ``error`` member."""

    def __init__(self, code: Any, message: str):
        super().__init__(f"MCP error {code}: {message}")
        self.code = code
        self.rpc_message = message


# ── JSON-RPC framing ──────────────────────────────────────────────────────


def build_request(method: str, params: Optional[Dict[str, Any]], request_id: int) -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": method,
        "params": params or {},
    }


def _parse_event_stream(body: str) -> Dict[str, Any]:
    """Pick the JSON-RPC envelope out of an event-stream body.

    Each event may carry several ``data:`` lines (joined with newlines); the
    last event holding a ``result`` or ``error`` wins.
    """
    payloads: List[str] = []
    current: List[str] = []
    for raw_line in body.splitlines():
        line = raw_line.rstrip("\r")
        if not line.strip():
            if current:
                payloads.append("\n".join(current))
                current = []
            continue
        if line.startswith("data:"):
            current.append(line[5:].lstrip())
        # id:, event:, retry: and ":" comments carry nothing we need
    if current:
        payloads.append("\n".join(current))

    envelope: Optional[Dict[str, Any]] = None
    for payload in payloads:
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON event data: %.80s", payload)
            continue
        if not isinstance(parsed, dict):
            continue
        if "result" in parsed or "error" in parsed:
            envelope = parsed
        elif envelope is None:
            envelope = parsed
    if envelope is None:
        raise MCPProtocolError("Event stream contained no JSON-RPC message")
    return envelope


def _parse_json(body: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError as exc:
        raise MCPProtocolError(f"Invalid JSON response: {exc}") from exc
    if isinstance(parsed, list):
        # Batch reply: take the first real response.
        parsed = next((p for p in parsed if isinstance(p, dict)), None)
    if not isinstance(parsed, dict):
        raise MCPProtocolError("Response is not a JSON-RPC object")
    return parsed


def parse_rpc_body(body: str, content_type: Optional[str] = None) -> Dict[str, Any]:
    """
    Parse a response body that is either plain JSON or an event stream.

    The content type decides when the server sent a useful one; otherwise
    the first non-blank character is sniffed (``{``/``[`` means JSON).
    """
    media_type = (content_type or "").split(";")[0].strip().lower()
    if media_type == "text/event-stream":
        return _parse_event_stream(body)
    if media_type in ("application/json", "application/json-rpc"):
        return _parse_json(body)

    stripped = body.lstrip()
    if not stripped:
        raise MCPProtocolError("Empty response body")
    if stripped[0] in "{[":
        return _parse_json(stripped)
    return _parse_event_stream(stripped)


def unwrap_envelope(envelope: Dict[str, Any]) -> Dict[str, Any]:
    """Return the ``result`` member, raising ``MCPRPCError`` for an ``error``."""
    if envelope.get("error") is not None:
        err = envelope["error"]
        if isinstance(err, dict):
            raise MCPRPCError(err.get("code"), str(err.get("message", "unknown error")))
        raise MCPRPCError(None, str(err))
    if "result" not in envelope:
        raise MCPProtocolError("Response has neither result nor error")
    result = envelope["result"]
    return result if isinstance(result, dict) else {"value": result}


# ── HTTP ──────────────────────────────────────────────────────────────────


class HTTPTransport:
    """
    JSON-RPC over HTTP POST with optional session affinity.

    The session identifier is read from every response and sent back on the
    next request. The caller owns the ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.session_id = session_id
        self._client = client
        self._request_id = 0

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.session_id:
            headers[SESSION_HEADER] = self.session_id
        return headers

    async def send(self, method: str, params: Optional[Dict[str, Any]], timeout: float) -> Dict[str, Any]:
        """POST one request and return the parsed envelope (errors not yet unwrapped)."""
        self._request_id += 1
        request = build_request(method, params, self._request_id)

        try:
            response = await self._client.post(
                self.url,
                json=request,
                headers=self._headers(),
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise MCPTimeoutError(f"Connection timeout after {timeout:g}s ({self.url})") from exc
        except httpx.HTTPError as exc:
            raise MCPTransportError(f"Connection failed ({self.url}): {exc}") from exc

        session_id = response.headers.get(SESSION_HEADER)
        if session_id:
            self.session_id = session_id

        self._raise_for_status(response)
        return parse_rpc_body(response.text, response.headers.get("content-type"))

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        detail = response.text.strip()[:200]
        if status in (401, 403):
            message = f"Authentication failed ({status})"
        elif status == 404:
            message = f"Endpoint not found (404): check the configured URL {self.url}"
        elif status >= 500:
            message = f"Server error ({status})"
        else:
            message = f"Unexpected HTTP status {status}"
        if detail:
            message = f"{message}: {detail}"
        raise MCPHTTPError(status, message)


# ── Stdio ─────────────────────────────────────────────────────────────────


class StdioTransport:
    """
    One-shot JSON-RPC over a subprocess's stdin/stdout.

    Every request spawns the command, writes a single request line, reads
    the whole output and treats the last non-blank stdout line as the
    response.
    """

    def __init__(
        self,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        self.command = command
        self.args = args or []
        self.env = env or {}

    def resolve_executable(self) -> str:
        """Absolute path of ``command`` on the search path."""
        path = shutil.which(self.command)
        if path is None:
            raise MCPTransportError(f"Executable '{self.command}' not found in PATH")
        return path

    async def send(self, method: str, params: Optional[Dict[str, Any]], timeout: float) -> Dict[str, Any]:
        merged_env = {**os.environ, **self.env}
        line = json.dumps(build_request(method, params, 1)) + "\n"

        try:
            process = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=merged_env,
            )
        except FileNotFoundError as exc:
            raise MCPTransportError(f"MCP server command not found: {self.command}") from exc
        except OSError as exc:
            raise MCPTransportError(f"Failed to start {self.command}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(line.encode()), timeout=timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise MCPTimeoutError(f"{self.command} did not respond within {timeout:g}s") from exc

        err_text = stderr.decode(errors="replace").strip()
        if process.returncode != 0:
            raise MCPTransportError(err_text or f"{self.command} exited with code {process.returncode}")

        lines = [l for l in stdout.decode(errors="replace").splitlines() if l.strip()]
        if not lines:
            raise MCPTransportError("MCP server closed connection (empty response)")
        return _parse_json(lines[-1])


def parse_version(text: str) -> Tuple[int, ...]:
    """``"v20.11.1"`` → ``(20, 11, 1)``."""
    match = re.search(r"(\d+(?:\.\d+)*)", text)
    if not match:
        raise ValueError(f"No version number in {text!r}")
    return tuple(int(part) for part in match.group(1).split("."))


async def check_runtime(executable: str, min_version: str, version_args: List[str], timeout: float) -> str:
    """Verify ``executable`` exists and reports at least ``min_version``."""
    if shutil.which(executable) is None:
        raise MCPTransportError(f"Runtime '{executable}' not found in PATH")
    try:
        process = await asyncio.create_subprocess_exec(
            executable,
            *version_args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        process.kill()
        await process.wait()
        raise MCPTimeoutError(f"'{executable} {' '.join(version_args)}' timed out") from exc
    except OSError as exc:
        raise MCPTransportError(f"Failed to run {executable}: {exc}") from exc

    reported = stdout.decode(errors="replace").strip()
    try:
        found = parse_version(reported)
    except ValueError as exc:
        raise MCPTransportError(f"Could not determine {executable} version") from exc
    required = parse_version(min_version)
    width = max(len(found), len(required))
    if found + (0,) * (width - len(found)) < required + (0,) * (width - len(required)):
        raise MCPTransportError(
            f"{executable} {reported} is too old (need >= {min_version})"
        )
    return reported
