# ===== IMPORTS & DEPENDENCIES =====
import re
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any

from catalog_populator.models.game import RawProduct, TaxonomyRecord
from catalog_populator.utils.slug import taxonomy_slug

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

# Date layouts seen in the catalog API besides plain ISO-8601
RELEASE_DATE_FORMATS = ["%Y.%m.%d", "%Y/%m/%d", "%d.%m.%Y"]

# ===== UTILITY FUNCTIONS =====

def to_taxonomy_record(name: str, slug: Optional[str] = None) -> TaxonomyRecord:
    """Builds the {name, slug} pair for a taxonomy name, deriving the slug if none is given."""
    name = name.strip()
    return TaxonomyRecord(name=name, slug=slug or taxonomy_slug(name))


def extract_taxonomy(product: RawProduct) -> Dict[str, List[TaxonomyRecord]]:
    """
    Returns the taxonomy references of a product keyed by entity type.
    Categories keep the slug supplied by the source genre; the others derive one.
    """
    refs: Dict[str, List[TaxonomyRecord]] = {
        "developer": [],
        "publisher": [],
        "category": [],
        "platform": [],
    }
    for name in product.get('developers') or []:
        if name and name.strip():
            refs["developer"].append(to_taxonomy_record(name))
    for name in product.get('publishers') or []:
        if name and name.strip():
            refs["publisher"].append(to_taxonomy_record(name))
    for genre in product.get('genres') or []:
        if isinstance(genre, str):
            genre = {'name': genre}
        name = (genre.get('name') or '').strip()
        if name:
            refs["category"].append(to_taxonomy_record(name, genre.get('slug')))
    for name in product.get('operatingSystems') or []:
        if name and name.strip():
            refs["platform"].append(to_taxonomy_record(name))
    return refs


def parse_price(product: RawProduct) -> Optional[float]:
    """Reads price.finalMoney.amount ('9.99') as a float."""
    amount = ((product.get('price') or {}).get('finalMoney') or {}).get('amount')
    if amount is None:
        logger.warning(f"[parse_price] No price amount for '{product.get('title')}'.")
        return None
    try:
        return float(amount)
    except (TypeError, ValueError):
        logger.warning(f"[parse_price] Unparsable price '{amount}' for '{product.get('title')}'.")
        return None


def _format_timestamp(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


def normalize_release_date(value: Any) -> Optional[str]:
    """
    Normalizes a release date to an ISO-8601 UTC timestamp ('2020-01-01' -> '2020-01-01T00:00:00.000Z').
    Accepts ISO dates and datetimes, dotted dates and unix timestamps. Returns None when unparsable.
    """
    if value is None or value == '':
        return None

    if isinstance(value, (int, float)):
        return _format_timestamp(datetime.fromtimestamp(value, tz=timezone.utc))

    text = str(value).strip()
    if re.fullmatch(r'\d{9,}', text):
        return _format_timestamp(datetime.fromtimestamp(int(text), tz=timezone.utc))

    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        parsed = None
        for fmt in RELEASE_DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        logger.warning(f"[normalize_release_date] Unrecognized release date: '{text}'")
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return _format_timestamp(parsed)
