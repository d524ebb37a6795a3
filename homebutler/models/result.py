"""Per-host operation results for single and multi-host calls."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from homebutler.errors import InvalidPayloadError


@dataclass
class HostResult:
    """Outcome of one operation on one host."""

    host: str
    data: bytes | None = None
    error: str | None = None
    completed_at: datetime = field(default_factory=datetime.now)

    @property
    def ok(self) -> bool:
        """True when the host produced a payload."""
        return self.error is None

    def payload(self) -> Any:
        """Decode the JSON payload, or None if absent or not JSON."""
        if self.data is None:
            return None
        try:
            return json.loads(self.data)
        except (ValueError, UnicodeDecodeError):
            return None

    def to_dict(self) -> dict[str, Any]:
        """Serializable form: ``{"server", "data"|"error"}``."""
        result: dict[str, Any] = {"server": self.host}
        if self.error is not None:
            result["error"] = self.error
            return result
        decoded = self.payload()
        if decoded is None and self.data is not None:
            decoded = self.data.decode("utf-8", errors="replace")
        result["data"] = decoded
        return result


def decode_payload(host_name: str, output: bytes) -> Any:
    """Decode a JSON payload produced by an operation.

    Raises:
        InvalidPayloadError: If the output is not JSON
    """
    try:
        return json.loads(output)
    except (ValueError, UnicodeDecodeError) as e:
        text = output.decode("utf-8", errors="replace").strip()
        raise InvalidPayloadError(host_name, f"not JSON: {text[:200]!r}") from e
