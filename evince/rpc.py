"""
Tendermint RPC client for ABCI queries.

The gateway treats the chain node as an opaque request/response channel:
request bytes go in under a method path, response bytes come out.
"""
import base64
import itertools
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import requests
import structlog

from .errors import ABCIQueryError, RPCConnectionError

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 30.0


class RPCClient:
    """
    Client for one chain node's JSON-RPC endpoint.

    Use `RPCClient.connect` to build one; it validates the endpoint and
    prepares an HTTP session. Every request is bounded by `timeout`.
    """

    _ids = itertools.count(1)

    def __init__(self, endpoint: str, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def connect(cls, host: str, timeout: float = DEFAULT_TIMEOUT,
                session: Optional[requests.Session] = None) -> "RPCClient":
        """
        Create a client for `host`.

        Args:
            host: Node address, e.g. ``https://rpc.example.org:443`` or ``tcp://node:26657``
            timeout: Dial and query timeout in seconds
            session: Optional HTTP session to reuse

        Raises:
            RPCConnectionError: If the host is not a usable RPC endpoint
        """
        parts = urlsplit(host)
        scheme = "http" if parts.scheme == "tcp" else parts.scheme
        if scheme not in ("http", "https") or not parts.netloc:
            raise RPCConnectionError(f"invalid rpc host {host!r}")

        endpoint = urlunsplit((scheme, parts.netloc, parts.path, "", ""))
        return cls(endpoint, timeout=timeout, session=session)

    def query(self, path: str, data: bytes, height: int = 0) -> bytes:
        """
        Execute an ABCI query.

        Args:
            path: Query method path, e.g. ``/cosmos.staking.v1beta1.Query/Validators``
            data: Serialized request message
            height: Block height, 0 for latest

        Returns:
            The serialized response message

        Raises:
            RPCConnectionError: If the node cannot be reached
            ABCIQueryError: If the node answered but the query failed
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "abci_query",
            "params": {
                "path": path,
                "data": data.hex(),
                "height": str(height),
                "prove": False,
            },
        }

        try:
            response = self.session.post(self.endpoint, json=payload, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RPCConnectionError(e) from e
        except requests.RequestException as e:
            raise ABCIQueryError(e) from e

        if response.status_code != 200:
            raise ABCIQueryError(f"http status {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise ABCIQueryError(f"invalid json-rpc body: {e}") from e

        if body.get("error"):
            error = body["error"]
            raise ABCIQueryError(f"{error.get('message')} {error.get('data') or ''}".strip())

        result = (body.get("result") or {}).get("response")
        if result is None:
            raise ABCIQueryError("missing abci response")

        if result.get("code", 0) != 0:
            raise ABCIQueryError(f"code {result['code']} ({result.get('codespace', '')}): {result.get('log', '')}")

        try:
            return base64.b64decode(result.get("value") or b"", validate=True)
        except ValueError as e:
            raise ABCIQueryError(f"invalid response value: {e}") from e

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
