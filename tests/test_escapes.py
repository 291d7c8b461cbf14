import pytest

from bplus.escapes import unescape_string


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("a\\nb", "a\nb"),
        ("tab\\there", "tab\there"),
        ("back\\\\slash", "back\\slash"),
        ('say \\"hi\\"', 'say "hi"'),
    ],
)
def test_known_escapes(raw, expected):
    assert unescape_string(raw) == expected


def test_unknown_escape_yields_the_character():
    assert unescape_string("\\q\\x") == "qx"


def test_trailing_backslash_is_kept():
    assert unescape_string("end\\") == "end\\"


def test_plain_text_is_unchanged():
    text = "hello, world"
    assert unescape_string(text) == text


def test_empty_string():
    assert unescape_string("") == ""


def test_escaped_backslash_does_not_start_new_escape():
    assert unescape_string("\\\\n") == "\\n"