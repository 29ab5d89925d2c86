"""Session key generation."""

import base64
import re
import uuid

KEY_LENGTH = 20

# Keys travel in relay URL paths, so only identifier characters are allowed
KEY_PATTERN = re.compile(r"[A-Za-z0-9_]{1,64}")

_NON_WORD = re.compile(r"[^A-Za-z0-9_]")


def _random_chunk() -> bytes:
    return uuid.uuid4().bytes


def create_id(length: int = KEY_LENGTH) -> str:
    """
    Generate a random, URL-safe session key.

    Random bytes are base64 encoded and stripped of the characters that are
    not identifier-safe; more random bytes are appended until enough remain.
    Uniqueness is probabilistic only.
    """
    chunks = [_random_chunk()]

    while True:
        encoded = base64.b64encode(b"".join(chunks)).decode("ascii")
        result = _NON_WORD.sub("", encoded)[-length:]

        if len(result) == length:
            return result

        chunks.append(_random_chunk())


def is_valid_key(key: str) -> bool:
    """Check that a session key is safe to use in a relay path."""
    return KEY_PATTERN.fullmatch(key) is not None
