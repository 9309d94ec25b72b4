"""
Ordered RSA signing for the myPOS IPC protocol.

Outbound: concatenate field values in wire order (no separator), RSA-SHA1
PKCS#1 v1.5 sign, base64 the signature, append it as the last field.
Inbound: strip ``Signature``, rebuild the message from the remaining values in
the order received and verify against the gateway's public certificate.
"""
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence
from urllib.parse import parse_qsl

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from core.logging_config import get_logger
from core.settings import FatalConfigError


logger = get_logger(__name__)

SIGNATURE_FIELD = "Signature"

_HASHES = {
    "sha1": hashes.SHA1,
    "sha256": hashes.SHA256,
}


@dataclass(frozen=True)
class SignablePayload:
    """Explicit ordered (key, value) pairs; order is part of the wire contract."""

    pairs: tuple[tuple[str, str], ...]
    signature: Optional[str] = None

    @classmethod
    def of(cls, pairs: Iterable[tuple[str, object]]) -> "SignablePayload":
        return cls(pairs=tuple((str(k), "" if v is None else str(v)) for k, v in pairs))

    @classmethod
    def from_fields(cls, fields: Sequence[tuple[str, str]]) -> "SignablePayload":
        """Split an inbound field list into payload + signature."""
        signature = None
        pairs = []
        for key, value in fields:
            if key == SIGNATURE_FIELD:
                signature = value
            else:
                pairs.append((key, value))
        return cls(pairs=tuple(pairs), signature=signature)

    @classmethod
    def from_form_body(cls, body: bytes | str) -> "SignablePayload":
        text = body.decode("utf-8") if isinstance(body, bytes) else body
        return cls.from_fields(parse_qsl(text, keep_blank_values=True))

    def message(self, *, separator: str = "", base64_encode: bool = False) -> bytes:
        joined = separator.join(value for _, value in self.pairs).encode("utf-8")
        return base64.b64encode(joined) if base64_encode else joined

    def with_signature(self, signature: str) -> "SignablePayload":
        return SignablePayload(pairs=self.pairs, signature=signature)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        for k, v in self.pairs:
            if k == key:
                return v
        return default

    def to_fields(self) -> list[tuple[str, str]]:
        fields = list(self.pairs)
        if self.signature is not None:
            fields.append((SIGNATURE_FIELD, self.signature))
        return fields


def load_key_material(value: str, *, name: str) -> bytes:
    """Accept inline PEM text or a filesystem path."""
    if "-----BEGIN" in value:
        return value.encode("utf-8")
    path = Path(value).expanduser()
    try:
        return path.read_bytes()
    except OSError as exc:
        raise FatalConfigError(f"Cannot read {name} from {path}: {exc}") from exc


class RsaSigner:
    def __init__(self, private_key_pem: bytes, *, hash_name: str = "sha1") -> None:
        try:
            key = serialization.load_pem_private_key(private_key_pem, password=None)
        except (ValueError, TypeError) as exc:
            raise FatalConfigError(f"Invalid RSA private key: {exc}") from exc
        if not isinstance(key, rsa.RSAPrivateKey):
            raise FatalConfigError("Private key is not an RSA key")
        self._key = key
        self._hash = _HASHES[hash_name.lower()]

    def sign(self, payload: SignablePayload) -> SignablePayload:
        raw = self._key.sign(payload.message(), padding.PKCS1v15(), self._hash())
        return payload.with_signature(base64.b64encode(raw).decode("ascii"))


class RsaVerifier:
    def __init__(
        self,
        public_pem: bytes,
        *,
        hash_name: str = "sha1",
        separator: str = "",
        base64_message: bool = False,
    ) -> None:
        try:
            if b"BEGIN CERTIFICATE" in public_pem:
                key = x509.load_pem_x509_certificate(public_pem).public_key()
            else:
                key = serialization.load_pem_public_key(public_pem)
        except ValueError as exc:
            raise FatalConfigError(f"Invalid gateway public certificate: {exc}") from exc
        if not isinstance(key, rsa.RSAPublicKey):
            raise FatalConfigError("Gateway public key is not an RSA key")
        self._key = key
        self._hash = _HASHES[hash_name.lower()]
        self._separator = separator
        self._base64_message = base64_message

    def verify(self, payload: SignablePayload) -> bool:
        """Never raises on bad input: any failure is simply ``False``."""
        if not payload.signature:
            return False
        try:
            raw = base64.b64decode(payload.signature, validate=True)
        except (binascii.Error, ValueError):
            return False
        message = payload.message(separator=self._separator, base64_encode=self._base64_message)
        try:
            self._key.verify(raw, message, padding.PKCS1v15(), self._hash())
        except InvalidSignature:
            return False
        return True
