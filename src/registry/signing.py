"""Signature verification for registry responses.

Every registry response is signed with the registry's RSA key
(PKCS#1 v1.5 padding, SHA-512 digest). Metadata arrives in a JSON envelope
``{"payload": <base64>, "signature": <base64>}``; archives carry a detached
signature in a response header and are verified from an incrementally
computed digest so they never need to be held in memory.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa, utils

from common.errors import ConfigError, RegistryResponseError, SignatureError

logger = logging.getLogger(__name__)


def load_public_key(source: Union[str, bytes, Path]) -> rsa.RSAPublicKey:
    """Load the trusted RSA public key from inline PEM text or a PEM file path."""
    if isinstance(source, Path):
        try:
            pem = source.read_bytes()
        except OSError as exc:
            raise ConfigError(f"Cannot read registry public key {source}: {exc}") from exc
    elif isinstance(source, str):
        pem = source.encode("ascii", errors="replace")
    else:
        pem = source

    try:
        key = serialization.load_pem_public_key(pem)
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise ConfigError(f"Invalid registry public key: {exc}") from exc
    if not isinstance(key, rsa.RSAPublicKey):
        raise ConfigError("Registry public key must be an RSA key")
    return key


def decode_base64(value: str, what: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise RegistryResponseError(f"{what} is not valid base64") from exc


def verify_signature(public_key: rsa.RSAPublicKey, data: bytes, signature: bytes) -> None:
    """Verify ``signature`` over ``data``; raises ``SignatureError`` on mismatch."""
    try:
        public_key.verify(signature, data, padding.PKCS1v15(), hashes.SHA512())
    except InvalidSignature as exc:
        raise SignatureError("Registry response signature does not match the trusted key") from exc


def verify_digest(public_key: rsa.RSAPublicKey, digest: bytes, signature: bytes) -> None:
    """Verify ``signature`` against a precomputed SHA-512 ``digest``."""
    try:
        public_key.verify(
            signature, digest, padding.PKCS1v15(), utils.Prehashed(hashes.SHA512())
        )
    except InvalidSignature as exc:
        raise SignatureError("Archive signature does not match the trusted key") from exc


def decode_signed_envelope(body: bytes, public_key: rsa.RSAPublicKey) -> bytes:
    """Verify a signed envelope and return its raw payload bytes."""
    try:
        envelope = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise RegistryResponseError(f"Registry response is not valid JSON: {exc}") from exc
    if not isinstance(envelope, dict):
        raise RegistryResponseError("Registry response envelope must be an object")

    payload_b64 = envelope.get("payload")
    signature_b64 = envelope.get("signature")
    if not isinstance(signature_b64, str) or not signature_b64:
        raise SignatureError("Registry response is not signed")
    if not isinstance(payload_b64, str):
        raise RegistryResponseError("Registry response envelope has no payload")

    payload = decode_base64(payload_b64, "payload")
    signature = decode_base64(signature_b64, "signature")
    verify_signature(public_key, payload, signature)
    return payload
