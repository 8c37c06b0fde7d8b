import logging

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

logger = logging.getLogger(__name__)

PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64


def verify(message: bytes, signature: bytes, public_key: bytes) -> bool:
    """
    Verify a detached Ed25519 signature.
    Anything that is not a well formed key or signature is a failed verification.

    :param message: The signed bytes
    :param signature: Raw 64 byte signature
    :param public_key: Raw 32 byte public key
    :return: True if the signature is valid
    """
    if not isinstance(public_key, bytes) or len(public_key) != PUBLIC_KEY_LENGTH:
        logger.warning("Public key of wrong type or length")
        return False
    if not isinstance(signature, bytes) or len(signature) != SIGNATURE_LENGTH:
        logger.warning("Signature of wrong type or length")
        return False

    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
    except (InvalidSignature, ValueError, TypeError):
        return False

    return True
