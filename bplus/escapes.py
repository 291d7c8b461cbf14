"""Handling of backslash escapes in string literals."""

_ESCAPES = {"n": "\n", "t": "\t", "\\": "\\", '"': '"'}


def unescape_string(text: str) -> str:
    """Resolve backslash escapes in a string literal's body.

    ``\\n``, ``\\t``, ``\\\\`` and ``\\"`` map to their characters; any other
    escaped character stands for itself. A trailing lone backslash is kept.
    """
    out: list[str] = []
    chars = iter(text)
    for ch in chars:
        if ch != "\\":
            out.append(ch)
            continue
        following = next(chars, None)
        if following is None:
            out.append(ch)
        else:
            out.append(_ESCAPES.get(following, following))
    return "".join(out)