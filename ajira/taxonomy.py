"""Slugs and the category/subcategory tree."""

import re

_INVALID_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")


def slugify(text: str) -> str:
    """Lowercase, drop punctuation, and join words with single dashes."""
    slug = _INVALID_CHARS.sub("", text.lower().strip())
    slug = _WHITESPACE.sub("-", slug)
    slug = _DASHES.sub("-", slug)
    return slug.strip("-")


def unique_slug(base: str, taken: set[str]) -> str:
    """Return ``base``, or ``base-2``, ``base-3``... if it is already taken."""
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


def build_category_tree(categories: list[dict], subcategories: list[dict]) -> list[dict]:
    """Attach subcategories to their parent categories.

    Both levels are sorted by name. Subcategories whose parent is missing
    are dropped.
    """
    children: dict[str, list[dict]] = {}
    for sub in subcategories:
        children.setdefault(sub["parent_id"], []).append(sub)

    tree = []
    for category in sorted(categories, key=lambda c: c["name"].lower()):
        subs = sorted(children.get(category["id"], []), key=lambda s: s["name"].lower())
        tree.append({**category, "subcategories": subs})
    return tree
