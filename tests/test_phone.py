import pytest

from leadcall.exceptions import InvalidPhoneNumberError
from leadcall.services.phone import normalize_phone


class TestNormalizePhone:
    def test_indian_mobile_gets_plus_91(self):
        assert normalize_phone("9876543210") == "+919876543210"

    def test_already_canonical_passes_through(self):
        assert normalize_phone("+15551234567") == "+15551234567"

    def test_double_zero_prefix_becomes_plus(self):
        assert normalize_phone("005551234567") == "+5551234567"

    def test_ten_digits_not_starting_6_to_9_is_north_american(self):
        assert normalize_phone("5551234567") == "+15551234567"

    def test_eleven_digits_with_leading_1(self):
        assert normalize_phone("15551234567") == "+15551234567"

    def test_twelve_digits_with_leading_91(self):
        assert normalize_phone("919876543210") == "+919876543210"

    def test_punctuation_and_spaces_are_stripped(self):
        assert normalize_phone("(555) 123-4567") == "+15551234567"
        assert normalize_phone(" +1 555.123.4567 ") == "+15551234567"

    def test_inner_plus_signs_are_dropped(self):
        assert normalize_phone("98765+43210") == "+919876543210"

    def test_other_lengths_use_default_country_code(self):
        assert normalize_phone("4412345678901") == "+914412345678901"
        assert normalize_phone("4412345678901", default_country_code="+44") == "+444412345678901"

    def test_too_short_fails(self):
        with pytest.raises(InvalidPhoneNumberError):
            normalize_phone("123")

    def test_short_plus_number_fails(self):
        with pytest.raises(InvalidPhoneNumberError):
            normalize_phone("+1234")

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc"])
    def test_missing_or_empty_fails(self, raw):
        with pytest.raises(InvalidPhoneNumberError):
            normalize_phone(raw)

    def test_error_message_mentions_input(self):
        with pytest.raises(InvalidPhoneNumberError) as exc:
            normalize_phone("123")
        assert "123" in str(exc.value)
        assert exc.value.formatted == "+91123"

    def test_invalid_phone_is_a_value_error(self):
        with pytest.raises(ValueError):
            normalize_phone("12")
