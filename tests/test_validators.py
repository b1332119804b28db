"""Tests for input validators."""

from utils.validators import validate_phone_number, normalize_phone_number, sanitize_input


def test_phone_validation():
    """Test phone number validation."""
    assert validate_phone_number('+11234567890') == True
    assert validate_phone_number('1234567890') == True
    assert validate_phone_number('123') == False
    assert validate_phone_number('') == False


def test_phone_normalization():
    """Test phone number normalization."""
    assert normalize_phone_number('1234567890') == '+11234567890'
    assert normalize_phone_number('(123) 456-7890') == '+11234567890'
    assert normalize_phone_number('+1234567890') == '+1234567890'
    assert normalize_phone_number('unknown') == 'unknown'


def test_sanitize_input():
    """Speech and SMS text is trimmed, stripped of markup and capped."""
    assert sanitize_input('  <b>hi</b> ') == 'bhi/b'
    assert sanitize_input('') == ''
    assert sanitize_input('x' * 20, max_length=5) == 'xxxxx'
