"""SSH host key trust store.

Manages an OpenSSH known_hosts file: verification of presented keys,
trust-on-first-use, operator confirmation and record removal.

Locking Strategy:
- One in-process lock per known_hosts path serializes check-then-append
  and rewrite operations.
- Appends are a single write of one line; rewrites go through a temporary
  file in the same directory followed by os.replace().
"""

import base64
import binascii
import hashlib
import hmac
import logging
import os
import tempfile
import threading
from collections.abc import Callable, Iterator
from pathlib import Path

from homebutler.errors import TrustCancelledError, TrustMismatchError
from homebutler.models import TrustRecord, TrustStatus

logger = logging.getLogger(__name__)

_meta_lock = threading.Lock()
_path_locks: dict[str, threading.Lock] = {}


def _lock_for(path: Path) -> threading.Lock:
    """Get or create the lock guarding a known_hosts path."""
    key = str(path.resolve())
    with _meta_lock:
        if key not in _path_locks:
            _path_locks[key] = threading.Lock()
        return _path_locks[key]


def _hashed_host_matches(pattern: str, address: str) -> bool:
    """Check a hashed ``|1|salt|hash`` entry against an address."""
    parts = pattern.split("|")
    if len(parts) != 4 or parts[1] != "1":
        return False
    try:
        salt = base64.b64decode(parts[2])
        expected = base64.b64decode(parts[3])
    except binascii.Error:
        return False
    actual = hmac.new(salt, address.encode(), hashlib.sha1).digest()
    return hmac.compare_digest(actual, expected)


def host_matches(hosts_field: str, address: str) -> bool:
    """Check whether a known_hosts host field lists the address.

    Args:
        hosts_field: First field of a known_hosts line (comma separated)
        address: Normalized address (``host`` or ``[host]:port``)

    Returns:
        True if any alias equals the address or a hashed alias matches it
    """
    for alias in hosts_field.split(","):
        if alias == address:
            return True
        if alias.startswith("|1|") and _hashed_host_matches(alias, address):
            return True
    return False


def parse_line(line: str) -> TrustRecord | None:
    """Parse one known_hosts line.

    Returns:
        TrustRecord, or None for blank, comment, marker or malformed lines
    """
    trimmed = line.strip()
    if not trimmed or trimmed.startswith("#") or trimmed.startswith("@"):
        return None
    fields = trimmed.split()
    if len(fields) < 3:
        return None
    return TrustRecord(
        hosts=tuple(fields[0].split(",")),
        key_type=fields[1],
        key=fields[2],
    )


class TrustStore:
    """Accepted host identities backed by a known_hosts file."""

    def __init__(self, known_hosts_path: str | Path | None = None):
        """Initialize trust store.

        Args:
            known_hosts_path: Path to known_hosts (default: ~/.ssh/known_hosts)
        """
        if known_hosts_path:
            self.path = Path(os.path.expanduser(str(known_hosts_path)))
        else:
            self.path = Path.home() / ".ssh" / "known_hosts"
        self._lock = _lock_for(self.path)

    def ensure_exists(self) -> Path:
        """Create the known_hosts file (0600) and its directory (0700) if needed.

        Returns:
            Path to the known_hosts file

        Raises:
            OSError: If the directory or file cannot be created
        """
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        if not self.path.exists():
            fd = os.open(self.path, os.O_CREAT | os.O_WRONLY, 0o600)
            os.close(fd)
            logger.info("Created known_hosts at %s", self.path)
        return self.path

    def _read_lines(self) -> list[str]:
        try:
            return self.path.read_text().split("\n")
        except FileNotFoundError:
            return []

    def _iter_records(self) -> Iterator[tuple[str, TrustRecord]]:
        for line in self._read_lines():
            record = parse_line(line)
            if record is not None:
                yield line, record

    def records(self, address: str | None = None) -> list[TrustRecord]:
        """List persisted records, optionally only those matching an address."""
        result = []
        for line, record in self._iter_records():
            if address is None or host_matches(line.split()[0], address):
                result.append(record)
        return result

    def verify(self, address: str, key_type: str, key: str) -> TrustStatus:
        """Classify a presented key for an address.

        Args:
            address: Normalized address
            key_type: Key algorithm (e.g. ssh-ed25519)
            key: Base64 public key

        Returns:
            TRUSTED if a record holds exactly this key, MISMATCH if records
            exist for the address but none match, UNKNOWN otherwise
        """
        known = self.records(address)
        if not known:
            return TrustStatus.UNKNOWN
        for record in known:
            if record.key_type == key_type and record.key == key:
                return TrustStatus.TRUSTED
        return TrustStatus.MISMATCH

    def known_key_types(self, address: str) -> list[str]:
        """Key algorithms recorded for an address, in file order."""
        types: list[str] = []
        for record in self.records(address):
            if record.key_type not in types:
                types.append(record.key_type)
        return types

    def _append(self, record: TrustRecord) -> None:
        self.ensure_exists()
        with open(self.path, "a+") as f:
            f.seek(0, os.SEEK_END)
            needs_newline = f.tell() > 0 and not self._ends_with_newline()
            f.write(("\n" if needs_newline else "") + record.to_line() + "\n")

    def _ends_with_newline(self) -> bool:
        with open(self.path, "rb") as f:
            f.seek(-1, os.SEEK_END)
            return f.read(1) == b"\n"

    def _accept(self, address: str, key_type: str, key: str) -> TrustRecord:
        """Append a record unless already trusted. Caller holds the lock."""
        record = TrustRecord(hosts=(address,), key_type=key_type, key=key)
        status = self.verify(address, key_type, key)
        if status == TrustStatus.TRUSTED:
            logger.debug("Host key for %s already trusted", address)
            return record
        if status == TrustStatus.MISMATCH:
            raise TrustMismatchError(address, address)
        self._append(record)
        logger.info(
            "Added %s host key for %s to %s (%s)",
            key_type,
            address,
            self.path,
            record.fingerprint,
        )
        return record

    def auto_accept(self, address: str, key_type: str, key: str) -> TrustRecord:
        """Trust a key on first use. Idempotent for the same address and key.

        Raises:
            TrustMismatchError: If the address is already pinned to another key
            OSError: If the file cannot be written
        """
        with self._lock:
            return self._accept(address, key_type, key)

    def confirm(
        self,
        address: str,
        key_type: str,
        key: str,
        approve: Callable[[str], bool],
    ) -> TrustRecord:
        """Ask the operator to approve a key fingerprint, then persist it.

        Args:
            address: Normalized address
            key_type: Key algorithm
            key: Base64 public key
            approve: Callback receiving the fingerprint, returns the decision

        Returns:
            The accepted record

        Raises:
            TrustCancelledError: If the operator declined (file untouched)
        """
        record = TrustRecord(hosts=(address,), key_type=key_type, key=key)
        if not approve(record.fingerprint):
            logger.info("Trust for %s declined by operator", address)
            raise TrustCancelledError(address)
        with self._lock:
            return self._accept(address, key_type, key)

    def forget(self, address: str) -> int:
        """Remove every line whose host list contains the address.

        A line listing several aliases is removed as a whole. Blank and
        comment lines are preserved verbatim.

        Returns:
            Number of removed lines
        """
        with self._lock:
            if not self.path.exists():
                return 0
            kept: list[str] = []
            removed = 0
            for line in self._read_lines():
                trimmed = line.strip()
                if not trimmed or trimmed.startswith("#"):
                    kept.append(line)
                    continue
                fields = trimmed.split()
                if len(fields) < 2 or not host_matches(fields[0], address):
                    kept.append(line)
                    continue
                removed += 1
            if removed:
                self._rewrite("\n".join(kept))
            logger.info("Removed %d known_hosts line(s) for %s", removed, address)
            return removed

    def _rewrite(self, content: str) -> None:
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".known_hosts.")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
