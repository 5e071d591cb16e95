"""
Person field parsing for package.json.

npm accepts people either as a single string::

    "Jane Doe <jane@example.com> (https://example.com)"

or as an object with name, email and url keys. Both forms are reduced
to a Person. Entries without a resolvable name are dropped.
"""

import re
from typing import Any

from pkgsync.core.manifest.models import Person, PersonRole

_EMAIL_RE = re.compile(r"<([^>]*)>")
_URL_RE = re.compile(r"\(([^)]*)\)")


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def parse_person_string(text: str, role: PersonRole) -> Person | None:
    """
    Parse a "Name <email> (url)" string.

    The email is taken from the first <...> span and the url from the
    first (...) span; whatever text remains, trimmed, is the name.

    Example:
        >>> parse_person_string("Jane Doe <jane@x.com> (https://x.com)", PersonRole.AUTHOR)
        Person(name='Jane Doe', email='jane@x.com', url='https://x.com', role=<PersonRole.AUTHOR: 'AUTHOR'>)
        >>> parse_person_string("<nobody@x.com>", PersonRole.AUTHOR) is None
        True
    """
    email_match = _EMAIL_RE.search(text)
    url_match = _URL_RE.search(text)

    remainder = text
    for match in (email_match, url_match):
        if match:
            remainder = remainder.replace(match.group(0), " ", 1)

    name = _clean(" ".join(remainder.split()))
    if name is None:
        return None

    return Person(
        name=name,
        email=_clean(email_match.group(1)) if email_match else None,
        url=_clean(url_match.group(1)) if url_match else None,
        role=role,
    )


def parse_person(value: Any, role: PersonRole) -> Person | None:
    """
    Parse one person entry in either string or object form.

    Objects accept ``email`` or ``mail`` and ``url`` or ``web``.

    Returns:
        Person, or None when no name can be resolved
    """
    if isinstance(value, str):
        return parse_person_string(value, role)

    if isinstance(value, dict):
        name = _clean(value.get("name"))
        if name is None:
            return None
        return Person(
            name=name,
            email=_clean(value.get("email")) or _clean(value.get("mail")),
            url=_clean(value.get("url")) or _clean(value.get("web")),
            role=role,
        )

    return None


def parse_people(data: dict[str, Any]) -> list[Person]:
    """
    Collect author, contributors and maintainers from a manifest.

    At most one AUTHOR is produced. A contributor or maintainer entry
    given as a bare string or object (instead of a list) is accepted.
    """
    people: list[Person] = []

    if author := parse_person(data.get("author"), PersonRole.AUTHOR):
        people.append(author)

    for key, role in (("contributors", PersonRole.CONTRIBUTOR), ("maintainers", PersonRole.MAINTAINER)):
        entries = data.get(key)
        if entries is None:
            continue
        if not isinstance(entries, list):
            entries = [entries]
        for entry in entries:
            if person := parse_person(entry, role):
                people.append(person)

    return people


def author_text(value: Any) -> str | None:
    """Render the raw author field as display text."""
    if isinstance(value, str):
        return _clean(value)
    if isinstance(value, dict):
        person = parse_person(value, PersonRole.AUTHOR)
        if person is None:
            return None
        text = person.name
        if person.email:
            text += f" <{person.email}>"
        if person.url:
            text += f" ({person.url})"
        return text
    return None
