import re

_WORD_START = re.compile(r"\b\w")


def title_case(text: str) -> str:
    """
    Normalizes capitalization of titles and names:
    lower-cases the text and upper-cases the first character of every word.

    >>> title_case("  the LORD of the rings ")
    'The Lord Of The Rings'
    >>> title_case("o'brien")
    "O'Brien"
    """
    return _WORD_START.sub(lambda m: m.group().upper(), text.strip().lower())


def normalize_username(username: str) -> str:
    return username.strip().lower()


def like_pattern(search: str) -> str:
    """
    Builds a substring LIKE pattern, escaping wildcards in the search text (escape char: backslash)
    """
    escaped = search.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
