"""
Async Electrum client used to watch the swap output and broadcast the claim.

Works against standard Electrum servers (ElectrumX, Fulcrum, etc.) using
asyncio streams for non-blocking I/O.
"""

import asyncio
import json
import ssl
import logging
from typing import Any, Dict, List, Optional
from contextlib import asynccontextmanager

from ..core.constants import SOCKET_TIMEOUT, SHUTDOWN_TIMEOUT

logger = logging.getLogger('tanos.clients')


class ElectrumRPCError(Exception):
    """The server answered a request with a JSON-RPC error."""


class ElectrumClient:
    """
    Async client for standard Electrum servers.

    Implements JSON-RPC 2.0 over TCP or SSL, one newline-delimited
    request/response at a time.
    """

    def __init__(
        self,
        host: str,
        port: int,
        use_ssl: bool = True,
        verify_cert: bool = True,
        timeout: Optional[float] = SOCKET_TIMEOUT
    ):
        """
        Initialize Electrum client.

        Args:
            host: Server hostname or IP address
            port: Server port number
            use_ssl: Whether to use SSL/TLS encryption
            verify_cert: Whether to verify SSL certificate
            timeout: Socket timeout in seconds (None blocks indefinitely)
        """
        self.host = host
        self.port = port
        self.use_ssl = use_ssl
        self.verify_cert = verify_cert
        self.timeout = timeout
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.request_id = 0
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self.writer is not None and self.reader is not None

    @asynccontextmanager
    async def connect(self):
        """
        Async context manager for managing connection to Electrum server.

        Example:
            >>> client = ElectrumClient('localhost', 50002)
            >>> async with client.connect():
            ...     utxos = await client.get_scripthash_listunspent(scripthash)
        """
        try:
            ssl_context = None
            if self.use_ssl:
                ssl_context = ssl.create_default_context()
                if not self.verify_cert:
                    ssl_context.check_hostname = False
                    ssl_context.verify_mode = ssl.CERT_NONE

            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(
                    self.host,
                    self.port,
                    ssl=ssl_context,
                    server_hostname=self.host if self.use_ssl else None
                ),
                timeout=self.timeout
            )
            logger.info(f"Connected to Electrum server {self.host}:{self.port}")

            yield self

        except asyncio.TimeoutError:
            raise ConnectionError(f"Connection to Electrum server {self.host}:{self.port} timed out")
        except (OSError, ssl.SSLError) as e:
            raise ConnectionError(f"Electrum connection error: {e}")
        finally:
            if self.writer:
                try:
                    self.writer.close()
                    # Expected to time out with SSL terminating proxies
                    await asyncio.wait_for(self.writer.wait_closed(), timeout=SHUTDOWN_TIMEOUT)
                except (ssl.SSLError, OSError, asyncio.TimeoutError):
                    pass
                finally:
                    self.writer = None
                    self.reader = None

    async def _send_request(self, method: str, params: List[Any]) -> Any:
        """
        Send JSON-RPC request and get response.

        Args:
            method: RPC method name
            params: RPC method parameters

        Returns:
            Result from server response

        Raises:
            ConnectionError: If not connected or connection failed
            ElectrumRPCError: If the server returned an error or garbage
        """
        if not self.is_connected:
            raise ConnectionError("Not connected to server")

        async with self._lock:
            self.request_id += 1
            request = {
                "jsonrpc": "2.0",
                "id": self.request_id,
                "method": method,
                "params": params
            }
            logger.debug(f"Sending request to server: {method}")

            self.writer.write((json.dumps(request) + "\n").encode())
            await self.writer.drain()

            response_data = await asyncio.wait_for(
                self.reader.readline(),
                timeout=self.timeout
            )

        if not response_data:
            raise ConnectionError("Connection closed by Electrum server")

        try:
            response = json.loads(response_data.decode().strip())
        except json.JSONDecodeError as e:
            raise ElectrumRPCError(f"Failed to parse Electrum JSON response: {e}")

        if response.get("error"):
            error = response["error"]
            message = error.get('message', error) if isinstance(error, dict) else error
            raise ElectrumRPCError(f"Electrum RPC Error: {message}")

        return response.get("result")

    async def get_server_version(self, client_name: str = "tanos") -> List[str]:
        """Negotiate protocol version; returns [server software, protocol]."""
        return await self._send_request("server.version", [client_name, "1.4"])

    async def get_scripthash_listunspent(self, scripthash: str) -> List[Dict[str, Any]]:
        """
        Get unspent outputs for a scripthash.

        Args:
            scripthash: Scripthash to query (reversed sha256 of scriptPubKey)

        Returns:
            List of {'tx_hash', 'tx_pos', 'height', 'value'} entries
        """
        return await self._send_request("blockchain.scripthash.listunspent", [scripthash])

    async def broadcast_transaction(self, raw_tx_hex: str) -> str:
        """
        Broadcast a raw transaction.

        Args:
            raw_tx_hex: Raw transaction in hexadecimal

        Returns:
            Transaction ID
        """
        return await self._send_request("blockchain.transaction.broadcast", [raw_tx_hex])
