"""Client-side encryption for GitHub Actions secrets.

GitHub only accepts secret values sealed with the repository's public key
(libsodium ``crypto_box_seal``): anonymous sender, only GitHub can open it,
and a fresh ephemeral key per call so the output differs every time.
"""

import base64
import binascii

from nacl import encoding, public
from nacl.exceptions import CryptoError


def seal_secret(public_key_b64: str, secret_value: str) -> str:
    """Seal ``secret_value`` for the repository key; returns standard base64.

    Raises ValueError when the public key is not 32 bytes of base64.
    """
    try:
        key = public.PublicKey(public_key_b64.encode("utf-8"), encoding.Base64Encoder)
    except (binascii.Error, CryptoError, TypeError) as exc:
        raise ValueError(f"Invalid repository public key: {exc}") from exc

    sealed_box = public.SealedBox(key)
    encrypted = sealed_box.encrypt(secret_value.encode("utf-8"))
    return base64.b64encode(encrypted).decode("utf-8")
