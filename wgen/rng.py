"""Per-step random number generators derived from the pipeline seed."""

from __future__ import annotations

import hashlib

import numpy as np


SEED_MASK = (1 << 64) - 1


def normalize_seed(seed: int) -> int:
    """Reduce any integer seed to an unsigned 64-bit value."""

    return int(seed) & SEED_MASK


def step_seed(seed: int, kind: str, *, salt: str = "") -> int:
    """64-bit seed for one generator kind, keyed by the step's effective seed.

    Steps of different kinds never share a stream under the same seed;
    `salt` separates further streams for the same kind when needed.
    """

    if not kind:
        raise ValueError("generator kind must be non-empty")
    key = normalize_seed(seed).to_bytes(8, byteorder="little")
    payload = f"{kind}/{salt}".encode("utf-8")
    digest = hashlib.blake2b(payload, key=key, digest_size=8, person=b"wgen-step").digest()
    return int.from_bytes(digest, byteorder="little", signed=False)


def step_rng(seed: int, kind: str, *, salt: str = "") -> np.random.Generator:
    return np.random.Generator(np.random.PCG64(step_seed(seed, kind, salt=salt)))
