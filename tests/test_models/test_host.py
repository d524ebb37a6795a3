"""Tests for host configuration models."""

import pytest

from homebutler.models import AuthMode, HostConfig, normalize_address


class TestHostConfig:
    """Tests for HostConfig."""

    def test_defaults(self) -> None:
        """Unset fields fall back to port 22, root and key auth."""
        host = HostConfig(name="nas", host="10.0.0.5")

        assert host.port == 22
        assert host.user == "root"
        assert host.auth == AuthMode.KEY
        assert host.bin_path == "homebutler"
        assert host.local is False

    def test_use_key_auth_unless_password_selected(self) -> None:
        """Only an explicit password mode disables key auth."""
        assert HostConfig(name="a", host="h").use_key_auth is True
        assert HostConfig(name="b", host="h", auth=AuthMode.PASSWORD).use_key_auth is False

    def test_address_joins_host_and_port(self) -> None:
        """Dial address is host:port."""
        assert HostConfig(name="nas", host="10.0.0.5", port=2222).address == "10.0.0.5:2222"

    def test_address_brackets_ipv6(self) -> None:
        """IPv6 literals are bracketed in the dial address."""
        host = HostConfig(name="v6", host="fd00::1", port=22)
        assert host.address == "[fd00::1]:22"

    def test_known_hosts_address(self) -> None:
        """known_hosts form omits the default port."""
        assert HostConfig(name="a", host="10.0.0.5").known_hosts_address == "10.0.0.5"
        assert (
            HostConfig(name="b", host="10.0.0.5", port=2222).known_hosts_address
            == "[10.0.0.5]:2222"
        )

    def test_is_frozen(self) -> None:
        """HostConfig cannot be mutated after loading."""
        host = HostConfig(name="nas", host="10.0.0.5")
        with pytest.raises(AttributeError):
            host.port = 2222  # type: ignore[misc]


@pytest.mark.parametrize(
    "host,port,expected",
    [
        ("example.com", 22, "example.com"),
        ("example.com", 2222, "[example.com]:2222"),
        ("[fd00::1]", 22, "fd00::1"),
        ("fd00::1", 2200, "[fd00::1]:2200"),
        ("  padded  ", 22, "padded"),
    ],
)
def test_normalize_address(host: str, port: int, expected: str) -> None:
    """Addresses are normalized the way OpenSSH writes them."""
    assert normalize_address(host, port) == expected
