from __future__ import annotations

import secrets

RED = "red"
BLACK = "black"


class SecureRandomSource:
    """Game outcomes drawn from the OS CSPRNG."""

    def uniform_int(self, min_value: int, max_value: int) -> int:
        if max_value < min_value:
            raise ValueError("max_value must be >= min_value")
        # randbelow rejection-samples, so ranges that are not a power of two stay unbiased
        return min_value + secrets.randbelow(max_value - min_value + 1)

    def binary_choice(self) -> str:
        return RED if secrets.randbits(1) == 0 else BLACK
