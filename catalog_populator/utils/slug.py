from slugify import slugify


def taxonomy_slug(name: str) -> str:
    """Lowercase, ASCII-only, hyphen separated slug for a taxonomy name ('Acme Games' -> 'acme-games')."""
    return slugify(name or "", lowercase=True)


def game_slug(product_slug: str) -> str:
    """Game slugs keep the storefront slug but use underscores ('foo-bar' -> 'foo_bar')."""
    return (product_slug or "").replace("-", "_")
