"""Detection of requests for product lines the store does not carry."""

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NonCatalogGroup:
    """Keywords for a product line outside the catalog."""

    category: str
    terms: tuple[str, ...]


NON_CATALOG_GROUPS = (
    NonCatalogGroup("books", ("book", "books", "novel", "textbook")),
    NonCatalogGroup("groceries", ("food", "grocery", "groceries", "fruit", "vegetable")),
    NonCatalogGroup("toys and games", ("toy", "toys", "game", "games", "board game")),
    NonCatalogGroup("video games", ("video game", "console", "playstation", "xbox", "nintendo")),
    NonCatalogGroup("beauty products", ("makeup", "cosmetic", "cosmetics", "beauty")),
    NonCatalogGroup(
        "medicine", ("medicine", "drug", "pharmaceutical", "pharmacy", "prescription")
    ),
    NonCatalogGroup("automotive products", ("car", "automobile", "vehicle", "automotive")),
    NonCatalogGroup("garden supplies", ("garden", "plant", "flower", "seed", "gardening")),
    NonCatalogGroup("pet supplies", ("pet", "dog", "cat", "fish", "animal")),
    NonCatalogGroup("kitchen appliances", ("kitchen", "cookware", "appliance", "appliances")),
)

# Catalog terms that make a sentence a comparison rather than a request
COMPARABLE_TERMS = (
    "phone", "laptop", "furniture", "accessory", "accessories", "shoe", "clothing",
)

REDIRECT_TEMPLATE = (
    "I'm sorry, but we currently only offer products in these categories: "
    "phones, laptops, accessories, furniture, shoes, and clothes. "
    "We don't currently carry {category}. "
    "Is there something from our available categories I can help you find?"
)


def _alternation(terms: tuple[str, ...]) -> str:
    return "|".join(re.escape(t) for t in sorted(terms, key=len, reverse=True))


def _mention_pattern(terms: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(rf"\b(?:{_alternation(terms)})s?\b", re.IGNORECASE)


def _asking_pattern(terms: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(
        r"\b(?:do you (?:have|sell|offer|carry)|looking for|want to buy|where are(?: the)?)\b"
        rf".*\b(?:{_alternation(terms)})s?\b",
        re.IGNORECASE,
    )


_COMPARING_RE = re.compile(
    rf"\b(?:compare|versus|vs|like|similar to)\b.*\b(?:{_alternation(COMPARABLE_TERMS)})",
    re.IGNORECASE,
)

_GROUP_PATTERNS = [
    (group, _mention_pattern(group.terms), _asking_pattern(group.terms))
    for group in NON_CATALOG_GROUPS
]


def check_for_non_catalog_products(text: str) -> str | None:
    """Return the non-catalog category the user is asking for, if any.

    A bare mention is not enough: the text must be phrased as a request
    ("do you sell...", "looking for...") and must not be a comparison with
    a catalog product ("a tablet like my phone").
    """
    if not text:
        return None
    for group, mention, asking in _GROUP_PATTERNS:
        if not mention.search(text):
            continue
        if asking.search(text) and not _COMPARING_RE.search(text):
            logger.info("Non-catalog request detected: %s", group.category)
            return group.category
    return None


def redirect_message(category: str) -> str:
    """Canned reply listing the categories the store actually carries."""
    return REDIRECT_TEMPLATE.format(category=category)
