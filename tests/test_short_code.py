"""
Tests for the Base62 short code codec.
"""
import random

import pytest

from urlstore.exceptions import InvalidCodeError
from urlstore.models.item import MAX_ID
from urlstore.services.short_code import Base62Codec, decode, encode


class TestEncode:
    """Test id -> code conversion"""

    def test_zero(self):
        """Zero is the first alphabet character"""
        assert encode(0) == "0"

    def test_small_ids(self):
        """Ids below the base map to single characters"""
        assert encode(1) == "1"
        assert encode(10) == "a"
        assert encode(61) == "Z"
        assert encode(62) == "10"

    def test_max_id_fits_eleven_chars(self):
        """The largest 64-bit id needs 11 characters"""
        code = encode(MAX_ID)

        assert len(code) == 11
        assert code.isalnum()

    def test_same_id_same_code(self):
        """Encoding is deterministic"""
        assert encode(123456789) == encode(123456789)

    def test_out_of_range_ids_rejected(self):
        """Negative ids and ids beyond 64 bits are not encodable"""
        with pytest.raises(ValueError):
            encode(-1)
        with pytest.raises(ValueError):
            encode(MAX_ID + 1)


class TestDecode:
    """Test code -> id conversion"""

    @pytest.mark.parametrize("item_id", [0, 1, 61, 62, 3843, 3844, 2 ** 63 - 1, 2 ** 63, MAX_ID])
    def test_round_trip_boundaries(self, item_id):
        """decode(encode(id)) == id at radix and sign boundaries"""
        assert decode(encode(item_id)) == item_id

    def test_round_trip_random_ids(self):
        """Random 64-bit ids survive a round trip"""
        rng = random.Random(42)
        for _ in range(1000):
            item_id = rng.getrandbits(64)
            assert decode(encode(item_id)) == item_id

    def test_distinct_ids_distinct_codes(self):
        """No two ids share a code"""
        rng = random.Random(7)
        ids = {rng.getrandbits(64) for _ in range(1000)}

        codes = {encode(item_id) for item_id in ids}

        assert len(codes) == len(ids)

    @pytest.mark.parametrize("code", ["abc-def", "ab_c", "a b", "ü1", "abc/", "=="])
    def test_character_outside_alphabet(self, code):
        """Any character outside 0-9a-zA-Z is rejected"""
        with pytest.raises(InvalidCodeError):
            decode(code)

    def test_empty_code(self):
        with pytest.raises(InvalidCodeError):
            decode("")

    def test_leading_zero_is_non_canonical(self):
        """'01' would alias '1'; only the canonical form is accepted"""
        with pytest.raises(InvalidCodeError):
            decode("01")

    def test_overflow(self):
        """Codes beyond 2^64 - 1 don't fit the id range"""
        with pytest.raises(InvalidCodeError):
            decode("Z" * 11)
        with pytest.raises(InvalidCodeError):
            decode("1" + "0" * 11)


class TestCustomAlphabet:
    """Test codec instances with other alphabets"""

    def test_duplicate_characters_rejected(self):
        with pytest.raises(ValueError):
            Base62Codec(alphabet="0123456789aa")

    def test_other_alphabet_round_trip(self):
        codec = Base62Codec(alphabet="0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz")

        assert codec.encode(10) == "A"
        assert codec.decode(codec.encode(987654321)) == 987654321
