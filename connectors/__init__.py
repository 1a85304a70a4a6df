"""
Connectors module for the presence bot farm.

A connector turns an :class:`~core.config.Identity` plus an
:class:`~core.config.Endpoint` into a live :class:`Session`.  The session
reports its lifecycle through callback events (``established``,
``terminated``, ``error``); the farm never looks at the wire protocol.

Submodules:
    base: ``Connector`` abstract base, ``Session`` event-emitting handle.
    tcp: ``TcpConnector`` – keeps a plain asyncio TCP stream open.
"""
