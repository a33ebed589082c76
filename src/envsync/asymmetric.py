"""
Asymmetric identity — RSA keypairs for wrapping project keys.

Public keys are SPKI PEM, private keys unencrypted PKCS#8 PEM (they are
protected at rest by the identity store and the recovery backup).
Encryption is RSA-OAEP with SHA-1, the padding Node's ``publicEncrypt``
applies by default, so keys wrapped by either client interoperate.

Only short payloads (a hex project key) may be wrapped.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging

from .errors import DecryptionFailure, MalformedInputError
from .models import KeyPair

logger = logging.getLogger("envsync.asymmetric")

DEFAULT_KEY_SIZE = 2048
_SHA1_DIGEST_SIZE = 20


def _oaep():
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.asymmetric import padding

    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA1()),
        algorithm=hashes.SHA1(),
        label=None,
    )


def _load_public_key(public_key_pem: str):
    from cryptography.hazmat.primitives.asymmetric import rsa
    from cryptography.hazmat.primitives.serialization import load_pem_public_key

    try:
        key = load_pem_public_key(public_key_pem.encode("utf-8"))
    except (ValueError, TypeError) as exc:
        logger.debug("Could not parse public key: %s", type(exc).__name__)
        raise MalformedInputError("Public key is malformed.") from None
    if not isinstance(key, rsa.RSAPublicKey):
        raise MalformedInputError("Public key is not an RSA key.")
    return key


def _load_private_key(private_key_pem: str):
    from cryptography.hazmat.primitives.asymmetric import rsa
    from cryptography.hazmat.primitives.serialization import load_pem_private_key

    try:
        key = load_pem_private_key(private_key_pem.encode("utf-8"), password=None)
    except (ValueError, TypeError) as exc:
        logger.debug("Could not parse private key: %s", type(exc).__name__)
        raise MalformedInputError("Private key is malformed.") from None
    if not isinstance(key, rsa.RSAPrivateKey):
        raise MalformedInputError("Private key is not an RSA key.")
    return key


def _public_pem(public_key) -> str:
    from cryptography.hazmat.primitives import serialization

    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def max_payload_size(key_size: int = DEFAULT_KEY_SIZE) -> int:
    """Largest plaintext (bytes) OAEP/SHA-1 can wrap under a key of ``key_size`` bits."""
    return key_size // 8 - 2 * _SHA1_DIGEST_SIZE - 2


def generate_keypair(key_size: int = DEFAULT_KEY_SIZE) -> KeyPair:
    """Generate a new RSA identity keypair.

    Args:
        key_size: Modulus size in bits. Anything below 2048 is refused.

    Returns:
        KeyPair with PEM-encoded public and private keys.
    """
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    if key_size < DEFAULT_KEY_SIZE:
        raise ValueError(f"RSA keys must be at least {DEFAULT_KEY_SIZE} bits")

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    return KeyPair(public_key=_public_pem(private_key.public_key()), private_key=private_pem)


def encrypt_asymmetric(data: str, public_key_pem: str) -> str:
    """Wrap a short string under an RSA public key.

    Args:
        data: Payload, typically the hex form of a project key.
        public_key_pem: Recipient's SPKI PEM public key.

    Returns:
        Base64 ciphertext.

    Raises:
        ValueError: If ``data`` exceeds what the key can wrap.
        MalformedInputError: If the public key cannot be parsed.
    """
    public_key = _load_public_key(public_key_pem)
    raw = data.encode("utf-8")
    limit = max_payload_size(public_key.key_size)
    if len(raw) > limit:
        raise ValueError(
            f"Payload of {len(raw)} bytes exceeds the {limit}-byte limit for this key"
        )
    return base64.b64encode(public_key.encrypt(raw, _oaep())).decode("ascii")


def decrypt_asymmetric(ciphertext: str, private_key_pem: str) -> str:
    """Unwrap a payload produced by ``encrypt_asymmetric``.

    Raises:
        DecryptionFailure: Wrong private key or corrupted ciphertext.
        MalformedInputError: Invalid base64 or unparseable private key.
    """
    private_key = _load_private_key(private_key_pem)
    try:
        raw = base64.b64decode(ciphertext, validate=True)
    except (binascii.Error, ValueError, TypeError):
        raise MalformedInputError() from None

    try:
        plaintext = private_key.decrypt(raw, _oaep())
    except ValueError:
        logger.debug("RSA-OAEP decryption failed")
        raise DecryptionFailure() from None

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError:
        raise DecryptionFailure() from None


def derive_public_key(private_key_pem: str) -> str:
    """Return the SPKI PEM public key belonging to a private key."""
    return _public_pem(_load_private_key(private_key_pem).public_key())


def public_key_fingerprint(public_key_pem: str) -> str:
    """SHA-256 fingerprint of a public key's DER encoding, uppercase hex."""
    from cryptography.hazmat.primitives import serialization

    der = _load_public_key(public_key_pem).public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(der).hexdigest().upper()


def keys_match(public_key_pem: str, private_key_pem: str) -> bool:
    """Whether ``public_key_pem`` is the public half of ``private_key_pem``."""
    return public_key_fingerprint(public_key_pem) == public_key_fingerprint(
        derive_public_key(private_key_pem)
    )
