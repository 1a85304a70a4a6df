"""Plain TCP connector.

Holds a single asyncio stream open to the endpoint for as long as the peer
keeps it.  Useful for servers that count a held socket as presence and as
the reference implementation of the :class:`~connectors.base.Connector`
contract.
"""

import asyncio
import logging
from typing import Optional

from connectors.base import DISCONNECTED, Connector, Session
from core.config import Endpoint, Identity

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 4096


class TcpSession(Session):
    """Session backed by ``asyncio.open_connection``."""

    def __init__(self, identity: Identity, endpoint: Endpoint) -> None:
        super().__init__(identity, endpoint)
        self._writer: Optional[asyncio.StreamWriter] = None
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"tcp-session-{identity.name}")

    async def _run(self) -> None:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.endpoint.host, self.endpoint.port),
                timeout=self.endpoint.connect_timeout,
            )
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            self._terminated("connect timed out", DISCONNECTED)
            return
        except OSError as exc:
            self._error(exc)
            self._terminated({"message": str(exc)}, DISCONNECTED)
            return

        self._writer = writer
        greeting = self.endpoint.options.get("greeting")
        if greeting:
            writer.write(str(greeting).format(name=self.identity.name).encode())
        self._established()

        try:
            while True:
                chunk = await reader.read(READ_CHUNK_BYTES)
                if not chunk:
                    self._terminated("connection closed by peer", DISCONNECTED)
                    return
        except asyncio.CancelledError:
            raise
        except OSError as exc:
            self._error(exc)
            self._terminated({"message": str(exc)}, DISCONNECTED)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if not self._task.done():
            self._task.cancel()
        if self._writer is not None:
            self._writer.close()
            self._writer = None


class TcpConnector(Connector):
    """Connector producing :class:`TcpSession` handles."""

    name = "tcp"

    def connect(self, identity: Identity, endpoint: Endpoint) -> TcpSession:
        logger.debug("Opening TCP session for %s to %s:%d", identity.name, endpoint.host, endpoint.port)
        return TcpSession(identity, endpoint)
