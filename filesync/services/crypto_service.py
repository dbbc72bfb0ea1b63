"""Public-key encryption of authentication challenges."""

from __future__ import annotations

import base64
import binascii
from typing import Protocol

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


class ChallengeCipher(Protocol):
    """Encrypts a challenge for a public key and decrypts it with the private key."""

    def encrypt(self, plaintext: str, public_key: bytes) -> str: ...

    def decrypt(self, ciphertext: str, private_key: bytes) -> str: ...


def generate_keypair(key_size: int = 2048) -> tuple[bytes, bytes]:
    """Generate an RSA key pair as (public PEM, private PEM)."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return public_pem, private_pem


def encrypt_challenge(plaintext: str, public_key: bytes) -> str:
    """Encrypt a string under an RSA public key. Raises ValueError on failure."""
    try:
        key = serialization.load_pem_public_key(public_key)
        if not isinstance(key, rsa.RSAPublicKey):
            raise TypeError("Not an RSA public key")
        ciphertext = key.encrypt(plaintext.encode("utf-8"), _OAEP)
    except (ValueError, TypeError) as exc:
        raise ValueError("Failed to encrypt challenge") from exc
    return base64.b64encode(ciphertext).decode("ascii")


def decrypt_challenge(ciphertext: str, private_key: bytes) -> str:
    """Decrypt a base64 RSA-OAEP ciphertext. Raises ValueError on failure."""
    try:
        key = serialization.load_pem_private_key(private_key, password=None)
        if not isinstance(key, rsa.RSAPrivateKey):
            raise TypeError("Not an RSA private key")
        raw = base64.b64decode(ciphertext.encode("ascii"), validate=True)
        return key.decrypt(raw, _OAEP).decode("utf-8")
    except (ValueError, TypeError, binascii.Error, UnicodeError) as exc:
        raise ValueError("Failed to decrypt challenge") from exc


class RsaChallengeCipher:
    """Default ChallengeCipher: RSA-OAEP (SHA-256), base64 ciphertext."""

    def encrypt(self, plaintext: str, public_key: bytes) -> str:
        return encrypt_challenge(plaintext, public_key)

    def decrypt(self, ciphertext: str, private_key: bytes) -> str:
        return decrypt_challenge(ciphertext, private_key)
