"""Connector factory registry for the presence bot farm.

Maps connector names (the ``CONNECTOR`` setting) to their implementing
classes.  Built-in connectors are imported directly; third-party or heavy
connectors can be registered as dotted-path strings that are resolved
lazily on first use.

Usage::

    from core.registry import get_connector_class

    cls = get_connector_class("tcp")
    if cls:
        connector = cls()
"""

import importlib
from typing import Dict, Optional, Union

from connectors.tcp import TcpConnector

# ---------------------------------------------------------------------------
# Central Registry
# ---------------------------------------------------------------------------
# Values are either a class reference (eagerly imported) or a dotted-path
# string ``"module.ClassName"`` that is resolved lazily on first use.
CONNECTOR_REGISTRY: Dict[str, Union[type, str]] = {
    "tcp": TcpConnector,
}


def register_connector(name: str, target: Union[type, str]) -> None:
    """Add or replace a registry entry (case-insensitive key)."""
    CONNECTOR_REGISTRY[name.lower()] = target


def get_connector_class(connector_type: str) -> Optional[type]:
    """Resolve a connector class from the registry by name.

    Performs case-insensitive lookup.  If the registry value is a
    dotted-path string (e.g. ``"mypkg.bedrock.BedrockConnector"``),
    the module is imported lazily and the class attribute is returned.

    Args:
        connector_type: Connector identifier (e.g. ``"tcp"``).

    Returns:
        The connector class, or ``None`` if *connector_type* is not
        registered.
    """
    cls_or_str = CONNECTOR_REGISTRY.get(connector_type.lower())
    if not cls_or_str:
        return None

    if isinstance(cls_or_str, str):
        module_path, class_name = cls_or_str.rsplit('.', 1)
        module = importlib.import_module(module_path)
        return getattr(module, class_name)

    return cls_or_str
