"""Roadmap title slugs."""

import re

_NON_SLUG = re.compile(r'[^a-z0-9-]+')


def slugify(title: str) -> str:
    """Lowercase, hyphen-separated slug.

    Examples:
        >>> slugify("Full Stack JavaScript")
        'full-stack-javascript'
        >>> slugify("C++ / Systems  Programming")
        'c-systems-programming'
    """
    if not title or not isinstance(title, str):
        return ""
    slug = title.strip().lower().replace(' ', '-')
    slug = _NON_SLUG.sub('-', slug)
    slug = re.sub(r'-+', '-', slug)
    return slug.strip('-')
