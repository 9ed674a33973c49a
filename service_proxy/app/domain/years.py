"""
Helpers for year-partitioned collections.
"""

import re
from typing import Iterable, List, Optional

from shared.errors import ValidationError

from .models import ListingItem


_YEAR_PATTERN = re.compile(r"[0-9]{4}")


def is_year_folder_name(name: str) -> bool:
    """Return True for names that are exactly four ASCII digits."""
    return bool(_YEAR_PATTERN.fullmatch(name or ""))


def year_folders(items: Iterable[ListingItem]) -> List[ListingItem]:
    """Filter year folders and order them newest year first."""
    folders = [item for item in items if item.is_folder and is_year_folder_name(item.name)]
    # Fixed width, so lexicographic order equals numeric order
    return sorted(folders, key=lambda item: item.name, reverse=True)


def validate_year(year: Optional[str]) -> Optional[str]:
    """Normalise an optional year query value; blank means "all years"."""
    if year is None or not year.strip():
        return None
    year = year.strip()
    if not is_year_folder_name(year):
        raise ValidationError("year must be a 4-digit number", details={"year": year})
    return year
