"""Generic short-identifier generation.

Callers supply the alphabet, the length and an async ``exists`` predicate
(usually a database lookup); the generator keeps drawing candidates until the
predicate reports one as unused.
"""
from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable

from inventory.core.errors import StorageError

logger = logging.getLogger(__name__)

NUMERIC_ASCII = "0123456789"
# The bcrypt flavour of base64: URL- and filename-safe apart from "/", no padding.
BASE64_BCRYPT = "./ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"

ExistsPredicate = Callable[[str], Awaitable[bool]]


def validate_alphabet(alphabet: str) -> int:
    """Return the number of random bits needed per character of ``alphabet``."""
    if not alphabet:
        raise ValueError("alphabet must not be empty")
    if len(set(alphabet)) != len(alphabet):
        raise ValueError("alphabet must not contain duplicate characters")
    return max(1, (len(alphabet) - 1).bit_length())


def sample_id(alphabet: str, length: int, rng: random.Random) -> str:
    """Draw ``length`` characters uniformly from ``alphabet``.

    Each character uses the smallest number of random bits that covers the
    alphabet, redrawing values past its end, so no character is favoured.
    """
    if length < 1:
        raise ValueError("length must be positive")
    bits = validate_alphabet(alphabet)
    size = len(alphabet)
    chars = []
    while len(chars) < length:
        value = rng.getrandbits(bits)
        if value < size:
            chars.append(alphabet[value])
    return "".join(chars)


async def generate_id(
    alphabet: str,
    length: int,
    exists: ExistsPredicate,
    *,
    rng: random.Random | None = None,
) -> str:
    rng = rng or random.Random()
    validate_alphabet(alphabet)

    attempts = 0
    while True:
        candidate = sample_id(alphabet, length, rng)
        attempts += 1
        try:
            in_use = await exists(candidate)
        except StorageError as exc:
            raise exc.with_context("unable to check identifier availability")
        except Exception as exc:
            raise StorageError.wrap(exc, "unable to check identifier availability") from exc
        if not in_use:
            if attempts > 1:
                logger.debug("Generated identifier after %s attempts", attempts)
            return candidate
