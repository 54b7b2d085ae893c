"""
Worst Generation - Hybrid message encryption.

This module implements the per-message envelope used on the relay:
- RSA-2048 identity keypair, generated fresh for every run
- AES-256-CBC (PKCS7 padding) encrypts the message body under a one-time key
- RSA-OAEP wraps that one-time key for the recipient

Wire format of an envelope:
    encryptedContent  hex ciphertext
    encryptedKey      base64 RSA-OAEP(key)
    iv                hex, 16 bytes

OAEP uses MGF1(SHA-1) and SHA-1, the padding parameters of Node's
RSA_PKCS1_OAEP_PADDING, so envelopes interoperate with the browser and
Node clients of the same relay. The wrapped value is the 32 raw key bytes.
Opening also accepts the 64-character hex form of the key that older
clients wrap.

All cryptographic operations use the cryptography library (Apache 2.0/BSD).
"""

import base64
import binascii
import hashlib
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, padding, serialization
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .constants import (
    AES_BLOCK_BITS,
    DECRYPTION_PLACEHOLDER,
    IV_SIZE,
    RSA_KEY_SIZE,
    RSA_PUBLIC_EXPONENT,
    SYMMETRIC_KEY_SIZE,
)
from .errors import CryptoError, DecryptionFailure, ErrorCode

logger = logging.getLogger(__name__)


def _oaep() -> asym_padding.OAEP:
    return asym_padding.OAEP(
        mgf=asym_padding.MGF1(algorithm=hashes.SHA1()),
        algorithm=hashes.SHA1(),
        label=None,
    )


class Identity:
    """
    The local user's alias and RSA keypair for this run.

    The private key stays in memory and is never serialized to the wire;
    only the PEM public key is sent to the relay.
    """

    def __init__(self, alias: str, private_key: rsa.RSAPrivateKey):
        self.alias = alias
        self.private_key = private_key
        self.public_key = private_key.public_key()

    @property
    def public_key_pem(self) -> str:
        """SubjectPublicKeyInfo PEM, as sent in login/register."""
        return self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("utf-8")

    @property
    def private_key_pem(self) -> str:
        """Unencrypted PKCS8 PEM of the private key."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("utf-8")

    @property
    def fingerprint(self) -> str:
        """SHA-256 of the DER public key, hex encoded."""
        der = self.public_key.public_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return hashlib.sha256(der).hexdigest()

    def __repr__(self) -> str:
        return f"Identity(alias={self.alias!r}, fingerprint={self.fingerprint[:16]})"


@dataclass(frozen=True)
class Envelope:
    """One hybrid-encrypted chat message as carried on the relay."""

    encrypted_content: str
    encrypted_key: str
    iv: str
    recipient: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        """Export envelope using the wire field names."""
        data = {
            "encryptedContent": self.encrypted_content,
            "encryptedKey": self.encrypted_key,
            "iv": self.iv,
        }
        if self.recipient is not None:
            data["recipient"] = self.recipient
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Envelope":
        """
        Build an envelope from a wire payload.

        Raises DecryptionFailure if a required field is missing, since such
        a payload can never be opened.
        """
        try:
            return Envelope(
                encrypted_content=str(data["encryptedContent"]),
                encrypted_key=str(data["encryptedKey"]),
                iv=str(data["iv"]),
                recipient=data.get("recipient"),
            )
        except (KeyError, TypeError) as e:
            raise DecryptionFailure("Malformed envelope", {"missing": str(e)}) from e


def generate_identity(alias: str, key_size: int = RSA_KEY_SIZE) -> Identity:
    """
    Generate a fresh RSA identity for this run.

    Raises CryptoError (E104) on failure; the caller treats it as fatal.
    """
    try:
        private_key = rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT,
            key_size=key_size,
        )
    except (ValueError, UnsupportedAlgorithm) as e:
        raise CryptoError(
            ErrorCode.E104_KEY_GENERATION_FAILED,
            f"Key generation failed: {e}",
            {"key_size": key_size},
        ) from e

    identity = Identity(alias, private_key)
    logger.info(f"Generated identity for {alias} ({identity.fingerprint[:16]})")
    return identity


def load_public_key(public_key_pem: str) -> rsa.RSAPublicKey:
    """Load a PEM public key, raising CryptoError (E103) if it is not RSA."""
    try:
        key = serialization.load_pem_public_key(public_key_pem.encode("utf-8"))
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise CryptoError(ErrorCode.E103_INVALID_KEY, f"Invalid public key: {e}") from e

    if not isinstance(key, rsa.RSAPublicKey):
        raise CryptoError(ErrorCode.E103_INVALID_KEY, "Public key is not an RSA key")
    return key


def seal(plaintext: str, recipient_public_key_pem: str, recipient: Optional[str] = None) -> Envelope:
    """
    Encrypt plaintext for the holder of recipient_public_key_pem.

    A new AES key and IV are drawn for every call, so sealing the same
    plaintext twice never yields the same envelope.
    """
    public_key = load_public_key(recipient_public_key_pem)

    iv = os.urandom(IV_SIZE)
    key = os.urandom(SYMMETRIC_KEY_SIZE)

    padder = padding.PKCS7(AES_BLOCK_BITS).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    try:
        wrapped_key = public_key.encrypt(key, _oaep())
    except ValueError as e:
        raise CryptoError(ErrorCode.E101_ENCRYPTION_FAILED, f"Key wrap failed: {e}") from e

    return Envelope(
        encrypted_content=ciphertext.hex(),
        encrypted_key=base64.b64encode(wrapped_key).decode("utf-8"),
        iv=iv.hex(),
        recipient=recipient,
    )


def _unwrapped_key(material: bytes) -> bytes:
    if len(material) == SYMMETRIC_KEY_SIZE:
        return material
    if len(material) == SYMMETRIC_KEY_SIZE * 2:
        # hex-string form wrapped by older clients
        return bytes.fromhex(material.decode("ascii"))
    raise DecryptionFailure("Unexpected key length", {"length": len(material)})


def open_envelope(envelope: Envelope, private_key_pem: str) -> str:
    """
    Decrypt an envelope with the local private key.

    Raises DecryptionFailure on any failure: malformed base64 or hex,
    wrong key, OAEP or PKCS7 check failure, or non UTF-8 plaintext.
    """
    try:
        private_key = serialization.load_pem_private_key(
            private_key_pem.encode("utf-8"), password=None
        )
        wrapped_key = base64.b64decode(envelope.encrypted_key, validate=True)
        key = _unwrapped_key(private_key.decrypt(wrapped_key, _oaep()))

        iv = bytes.fromhex(envelope.iv)
        if len(iv) != IV_SIZE:
            raise DecryptionFailure("Invalid IV length", {"length": len(iv)})

        ciphertext = bytes.fromhex(envelope.encrypted_content)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(AES_BLOCK_BITS).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return plaintext.decode("utf-8")
    except DecryptionFailure:
        raise
    except (ValueError, TypeError, binascii.Error, UnsupportedAlgorithm, AttributeError) as e:
        raise DecryptionFailure(f"Decryption failed: {e}") from e


def open_or_placeholder(envelope: Envelope, private_key_pem: str) -> str:
    """Open an envelope, substituting the fixed placeholder on failure."""
    try:
        return open_envelope(envelope, private_key_pem)
    except DecryptionFailure as e:
        logger.debug(f"Could not open envelope: {e}")
        return DECRYPTION_PLACEHOLDER
