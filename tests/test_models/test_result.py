"""Tests for HostResult."""

from homebutler.models import HostResult


def test_ok_result_decodes_payload() -> None:
    result = HostResult(host="nas", data=b'{"hostname": "nas"}')

    assert result.ok
    assert result.payload() == {"hostname": "nas"}
    assert result.to_dict() == {"server": "nas", "data": {"hostname": "nas"}}


def test_error_result() -> None:
    result = HostResult(host="pi", error="[pi] connection timed out")

    assert not result.ok
    assert result.payload() is None
    assert result.to_dict() == {"server": "pi", "error": "[pi] connection timed out"}


def test_non_json_payload_kept_as_text() -> None:
    """Output that is not JSON is passed through as a string."""
    result = HostResult(host="nas", data=b"plain output")

    assert result.payload() is None
    assert result.to_dict() == {"server": "nas", "data": "plain output"}
