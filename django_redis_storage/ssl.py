"""TLS settings for server and cluster connections.

``SslContext`` is configured with the familiar stream-context keys
(``verify_peer``, ``cafile``, ``peer_fingerprint`` ...) and converted to the
``ssl_*`` keyword arguments redis-py connections understand. Certificate
fingerprint pinning has no redis-py equivalent; it is enforced by
``PinnedSSLConnection`` after the handshake.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass, field, fields
from functools import cache
from typing import TYPE_CHECKING, Any, ClassVar

from django_redis_storage.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

# Hex digest length -> hash algorithm, for fingerprints given as plain strings.
_FINGERPRINT_ALGORITHMS = {32: "md5", 40: "sha1", 64: "sha256"}


@dataclass(frozen=True)
class SslContext:
    """TLS options for a connection. Unset (None) values keep the library default."""

    expected_peer_name: str | None = None
    verify_peer: bool | None = None
    verify_peer_name: bool | None = None
    allow_self_signed_certificates: bool | None = None
    certificate_authority_file: str | None = None
    certificate_authority_path: str | None = None
    local_certificate_path: str | None = None
    local_private_key_path: str | None = None
    passphrase: str | None = field(default=None, repr=False)
    verify_depth: int | None = None
    ciphers: str | None = None
    server_name_indication_enabled: bool | None = None
    disable_compression: bool | None = None
    peer_fingerprint: str | Mapping[str, str] | None = None
    security_level: int | None = None

    # attribute name -> context array key
    _KEYS: ClassVar[dict[str, str]] = {
        "expected_peer_name": "peer_name",
        "verify_peer": "verify_peer",
        "verify_peer_name": "verify_peer_name",
        "allow_self_signed_certificates": "allow_self_signed",
        "certificate_authority_file": "cafile",
        "certificate_authority_path": "capath",
        "local_certificate_path": "local_cert",
        "local_private_key_path": "local_pk",
        "passphrase": "passphrase",
        "verify_depth": "verify_depth",
        "ciphers": "ciphers",
        "server_name_indication_enabled": "SNI_enabled",
        "disable_compression": "disable_compression",
        "peer_fingerprint": "peer_fingerprint",
        "security_level": "security_level",
    }

    def __post_init__(self) -> None:
        for name, expected in (
            ("verify_peer", bool),
            ("verify_peer_name", bool),
            ("allow_self_signed_certificates", bool),
            ("server_name_indication_enabled", bool),
            ("disable_compression", bool),
            ("verify_depth", int),
            ("security_level", int),
        ):
            value = getattr(self, name)
            if value is not None and not isinstance(value, expected):
                msg = f"SSL context option `{self._KEYS[name]}` must be {expected.__name__}; {type(value).__name__} given."
                raise ConfigurationError(msg)
        if self.peer_fingerprint is not None:
            _normalize_fingerprint(self.peer_fingerprint)

    @classmethod
    def from_dict(cls, context: Mapping[str, Any]) -> SslContext:
        """Build from a mapping using either context keys (``cafile``) or attribute names."""
        by_key = {key: name for name, key in cls._KEYS.items()}
        kwargs: dict[str, Any] = {}
        for key, value in context.items():
            name = by_key.get(key, key)
            if name not in cls._KEYS:
                raise ConfigurationError(f"Unknown SSL context option '{key}'.")
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Return the context mapping with only the options that are set."""
        return {
            self._KEYS[f.name]: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None
        }

    def to_connection_kwargs(self) -> dict[str, Any]:
        """Translate to redis-py ``ssl_*`` connection keyword arguments."""
        kwargs: dict[str, Any] = {"ssl": True}

        if self.verify_peer is False or self.allow_self_signed_certificates:
            kwargs["ssl_cert_reqs"] = "none"
        elif self.verify_peer:
            kwargs["ssl_cert_reqs"] = "required"

        if self.verify_peer_name is not None:
            kwargs["ssl_check_hostname"] = self.verify_peer_name and self.verify_peer is not False
        if self.certificate_authority_file is not None:
            kwargs["ssl_ca_certs"] = self.certificate_authority_file
        if self.certificate_authority_path is not None:
            kwargs["ssl_ca_path"] = self.certificate_authority_path
        if self.local_certificate_path is not None:
            kwargs["ssl_certfile"] = self.local_certificate_path
        if self.local_private_key_path is not None:
            kwargs["ssl_keyfile"] = self.local_private_key_path
        if self.passphrase is not None:
            kwargs["ssl_password"] = self.passphrase
        if self.ciphers is not None:
            kwargs["ssl_ciphers"] = self.ciphers

        unsupported = [
            name
            for name in ("expected_peer_name", "verify_depth", "server_name_indication_enabled", "security_level")
            if getattr(self, name) is not None
        ]
        if unsupported:
            logger.debug("SSL context options without redis-py equivalent ignored: %s", ", ".join(unsupported))

        return kwargs

    @property
    def fingerprints(self) -> dict[str, str]:
        """Pinned certificate digests by hash algorithm; empty when not pinned."""
        if self.peer_fingerprint is None:
            return {}
        return _normalize_fingerprint(self.peer_fingerprint)


def _normalize_fingerprint(fingerprint: str | Mapping[str, str]) -> dict[str, str]:
    if isinstance(fingerprint, str):
        digest = fingerprint.replace(":", "").lower()
        algorithm = _FINGERPRINT_ALGORITHMS.get(len(digest))
        if algorithm is None:
            raise ConfigurationError(f"Cannot guess the hash algorithm of fingerprint '{fingerprint}'.")
        return {algorithm: digest}
    normalized = {}
    for algorithm, digest in fingerprint.items():
        if algorithm.lower() not in hashlib.algorithms_available:
            raise ConfigurationError(f"Unknown fingerprint hash algorithm '{algorithm}'.")
        normalized[algorithm.lower()] = digest.replace(":", "").lower()
    return normalized


def verify_fingerprint(certificate: bytes | None, fingerprints: Mapping[str, str]) -> None:
    """Raise ``ssl.SSLError`` unless the DER ``certificate`` matches every pinned digest."""
    import ssl as _ssl

    if certificate is None:
        raise _ssl.SSLError("Peer did not present a certificate to match the pinned fingerprint.")
    for algorithm, expected in fingerprints.items():
        actual = hashlib.new(algorithm, certificate).hexdigest()
        if not hmac.compare_digest(actual, expected):
            raise _ssl.SSLError(f"Peer certificate {algorithm} fingerprint does not match the pinned value.")


@cache
def pinned_connection_class(base: type) -> type:
    """Return a subclass of the library's SSLConnection that checks certificate fingerprints."""

    class PinnedSSLConnection(base):  # type: ignore[misc,valid-type]
        def __init__(self, *args: Any, ssl_peer_fingerprints: Mapping[str, str] | None = None, **kwargs: Any) -> None:
            self.ssl_peer_fingerprints = dict(ssl_peer_fingerprints or {})
            super().__init__(*args, **kwargs)

        def _connect(self) -> Any:
            sock = super()._connect()
            if self.ssl_peer_fingerprints:
                verify_fingerprint(sock.getpeercert(binary_form=True), self.ssl_peer_fingerprints)
            return sock

    PinnedSSLConnection.__name__ = PinnedSSLConnection.__qualname__ = f"Pinned{base.__name__}"
    return PinnedSSLConnection
