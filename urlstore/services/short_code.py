"""
Short code codec.

Converts an unsigned 64-bit id to a Base62 string and back. The mapping is
a bijection between [0, 2^64) and canonical codes (no leading zero digit), so
a code identifies exactly one id and vice versa.
"""

from urlstore.exceptions import InvalidCodeError
from urlstore.models.item import MAX_ID


class Base62Codec:
    """
    Base62 encoding of numeric ids.

    Base62 uses: 0-9 (10) + a-z (26) + A-Z (26) = 62 characters
    This is more compact than Base10 and URL-safe. The largest id,
    2^64 - 1, takes 11 characters.
    """

    BASE62_CHARS = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"

    def __init__(self, alphabet: str = BASE62_CHARS):
        if len(set(alphabet)) != len(alphabet):
            raise ValueError("Alphabet characters must be unique")
        self.alphabet = alphabet
        self.base = len(alphabet)
        self._index = {char: position for position, char in enumerate(alphabet)}

    def encode(self, number: int) -> str:
        """Convert an id to its short code."""
        if not 0 <= number <= MAX_ID:
            raise ValueError(f"Id {number} is outside the unsigned 64-bit range")

        if number == 0:
            return self.alphabet[0]

        result = []
        while number > 0:
            number, remainder = divmod(number, self.base)
            result.append(self.alphabet[remainder])

        return "".join(reversed(result))

    def decode(self, code: str) -> int:
        """
        Convert a short code back to its id.

        Raises:
            InvalidCodeError: empty or non-canonical code, unknown character,
                or a value that does not fit in 64 bits
        """
        if not code:
            raise InvalidCodeError("Empty short code")
        if len(code) > 1 and code[0] == self.alphabet[0]:
            raise InvalidCodeError(f"Non-canonical short code '{code}'")

        number = 0
        for char in code:
            position = self._index.get(char)
            if position is None:
                raise InvalidCodeError(f"Invalid character {char!r} in short code '{code}'")
            number = number * self.base + position
            if number > MAX_ID:
                raise InvalidCodeError(f"Short code '{code}' exceeds the 64-bit range")

        return number


_default_codec = Base62Codec()


def encode(number: int) -> str:
    return _default_codec.encode(number)


def decode(code: str) -> int:
    return _default_codec.decode(code)
