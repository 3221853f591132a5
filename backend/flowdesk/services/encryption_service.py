# /flowdesk/services/encryption_service.py

import base64
import binascii
import json
from typing import Any, Dict, NamedTuple, Optional

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

# This service handles the WhatsApp Flow envelope: the AES key arrives wrapped
# with RSA-OAEP (SHA-256), the body is AES-GCM with the 16-byte tag appended,
# and the response reuses the same key with the bitwise-complemented IV.

log = structlog.get_logger(__name__)

TAG_LENGTH = 16


class FlowConfigurationError(RuntimeError):
    """The private key is missing or unusable."""


class FlowDecryptionError(Exception):
    """Raised for every decryption failure, whatever stage it happened in."""

    def __init__(self):
        super().__init__("Failed to decrypt request")


class DecryptedFlowRequest(NamedTuple):
    payload: Dict[str, Any]
    aes_key: bytes
    initial_vector: bytes


def flip_iv(iv: bytes) -> bytes:
    return bytes(b ^ 0xFF for b in iv)


class FlowEncryptionService:
    def __init__(self, private_key_pem: Optional[str], passphrase: Optional[str] = None):
        self._private_key: Optional[rsa.RSAPrivateKey] = None
        if not private_key_pem:
            log.warning("No flow private key configured; flow endpoint is disabled.")
            return

        try:
            key = serialization.load_pem_private_key(
                private_key_pem.encode("utf-8"),
                password=passphrase.encode("utf-8") if passphrase else None,
            )
        except (ValueError, TypeError) as e:
            raise FlowConfigurationError("Flow private key could not be loaded") from e

        if not isinstance(key, rsa.RSAPrivateKey):
            raise FlowConfigurationError("Flow private key must be an RSA key")

        self._private_key = key
        log.info("Flow private key loaded.", key_size=key.key_size)

    @property
    def is_configured(self) -> bool:
        return self._private_key is not None

    def _require_key(self) -> rsa.RSAPrivateKey:
        if self._private_key is None:
            raise FlowConfigurationError("Private key not configured")
        return self._private_key

    def decrypt_request(
        self,
        encrypted_flow_data: str,
        encrypted_aes_key: str,
        initial_vector: str,
    ) -> DecryptedFlowRequest:
        """
        Decrypts an inbound flow envelope.

        Returns the JSON payload together with the AES key and raw IV, which the
        caller hands back to `encrypt_response` for the matching reply.
        Raises FlowDecryptionError on any failure, without saying which step failed.
        """
        private_key = self._require_key()

        try:
            aes_key = private_key.decrypt(
                base64.b64decode(encrypted_aes_key, validate=True),
                padding.OAEP(
                    mgf=padding.MGF1(algorithm=hashes.SHA256()),
                    algorithm=hashes.SHA256(),
                    label=None,
                ),
            )
            flow_data = base64.b64decode(encrypted_flow_data, validate=True)
            iv = base64.b64decode(initial_vector, validate=True)

            if len(flow_data) < TAG_LENGTH:
                raise ValueError("Encrypted body shorter than the authentication tag")

            body, tag = flow_data[:-TAG_LENGTH], flow_data[-TAG_LENGTH:]
            decryptor = Cipher(algorithms.AES(aes_key), modes.GCM(iv, tag)).decryptor()
            plaintext = decryptor.update(body) + decryptor.finalize()

            payload = json.loads(plaintext.decode("utf-8"))
            if not isinstance(payload, dict):
                raise ValueError("Decrypted payload is not a JSON object")
        except (ValueError, TypeError, InvalidTag, binascii.Error, UnicodeDecodeError):
            log.warning("Flow request decryption failed.")
            raise FlowDecryptionError() from None

        log.debug("Flow request decrypted.", body_length=len(body))
        return DecryptedFlowRequest(payload=payload, aes_key=aes_key, initial_vector=iv)

    def encrypt_response(self, payload: Dict[str, Any], aes_key: bytes, initial_vector: bytes) -> str:
        """Encrypts a response payload with the request's key and the flipped IV."""
        self._require_key()

        encryptor = Cipher(algorithms.AES(aes_key), modes.GCM(flip_iv(initial_vector))).encryptor()
        ciphertext = encryptor.update(json.dumps(payload).encode("utf-8")) + encryptor.finalize()
        return base64.b64encode(ciphertext + encryptor.tag).decode("utf-8")
