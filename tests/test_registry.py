import pytest

from connectors.tcp import TcpConnector
from core.registry import CONNECTOR_REGISTRY, get_connector_class, register_connector


@pytest.fixture
def registry_snapshot():
    saved = dict(CONNECTOR_REGISTRY)
    yield CONNECTOR_REGISTRY
    CONNECTOR_REGISTRY.clear()
    CONNECTOR_REGISTRY.update(saved)


def test_get_connector_class_direct():
    """Test resolving a direct class reference."""
    assert get_connector_class("tcp") is TcpConnector


def test_only_tcp_is_built_in():
    assert list(CONNECTOR_REGISTRY) == ["tcp"]
    assert get_connector_class("stream") is None


def test_get_connector_class_case_insensitive():
    """Test that key lookup is case-insensitive."""
    assert get_connector_class("TCP") is TcpConnector


def test_get_connector_class_invalid():
    """Test resolving an unknown connector type."""
    assert get_connector_class("carrier-pigeon") is None


def test_get_connector_class_lazy_load(registry_snapshot):
    """Test resolving a connector registered as a dotted path."""
    register_connector("Lazy", "connectors.tcp.TcpConnector")
    assert registry_snapshot["lazy"] == "connectors.tcp.TcpConnector"
    assert get_connector_class("lazy") is TcpConnector


def test_register_connector_replaces(registry_snapshot):
    class Dummy:
        pass

    register_connector("tcp", Dummy)
    assert get_connector_class("tcp") is Dummy


def test_lazy_load_missing_module(registry_snapshot):
    register_connector("broken", "connectors.does_not_exist.Connector")
    with pytest.raises(ImportError):
        get_connector_class("broken")


def test_all_registry_keys_resolve():
    """Verify all keys in registry can be resolved without error."""
    for key in CONNECTOR_REGISTRY:
        assert get_connector_class(key) is not None
