"""ISBN and title normalization used for comparison and validation."""
import re
from typing import List, Optional

from homearchive.exceptions import InvalidIsbnError

_NON_ISBN_CHARS = re.compile(r"[^0-9X]")
_NON_TITLE_CHARS = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_ISBN10 = re.compile(r"^\d{9}[\dX]$")
_ISBN13 = re.compile(r"^\d{13}$")


def normalize_isbn(isbn: Optional[str]) -> str:
    """
    Reduce an ISBN to its comparison key.
    
    Args:
        isbn: Raw ISBN, possibly hyphenated or spaced
        
    Returns:
        Uppercase digits and X only (empty string for None)
    """
    if not isbn:
        return ""
    return _NON_ISBN_CHARS.sub("", isbn.upper())


def normalize_title(title: Optional[str]) -> str:
    """
    Reduce a title to its comparison key.
    
    Lowercases, drops everything but ASCII letters, digits and whitespace,
    collapses whitespace runs and trims.
    """
    if not title:
        return ""
    key = _NON_TITLE_CHARS.sub("", title.lower())
    return _WHITESPACE.sub(" ", key).strip()


def is_valid_isbn(isbn: Optional[str]) -> bool:
    """Check ISBN-10/ISBN-13 shape (no checksum verification)."""
    clean = normalize_isbn(isbn)
    return bool(_ISBN10.match(clean) or _ISBN13.match(clean))


def validate_isbn(isbn: str) -> str:
    """
    Validate an ISBN supplied by a caller.
    
    Returns:
        Normalized ISBN
        
    Raises:
        InvalidIsbnError: if the normalized value is not 10 or 13 characters
    """
    if not is_valid_isbn(isbn):
        raise InvalidIsbnError(isbn)
    return normalize_isbn(isbn)


def isbn10_to_isbn13(isbn10: str) -> Optional[str]:
    """Convert an ISBN-10 to the 978-prefixed ISBN-13."""
    clean = normalize_isbn(isbn10)
    if not _ISBN10.match(clean):
        return None
    core = "978" + clean[:9]
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(core))
    return core + str((10 - total % 10) % 10)


def isbn13_to_isbn10(isbn13: str) -> Optional[str]:
    """Convert a 978-prefixed ISBN-13 back to ISBN-10 (979 has no ISBN-10)."""
    clean = normalize_isbn(isbn13)
    if not _ISBN13.match(clean) or not clean.startswith("978"):
        return None
    core = clean[3:12]
    total = sum(int(d) * (10 - i) for i, d in enumerate(core))
    check = (11 - total % 11) % 11
    return core + ("X" if check == 10 else str(check))


def isbn_variants(isbn: str) -> List[str]:
    """Normalized ISBN followed by its other-length equivalent, if any."""
    clean = normalize_isbn(isbn)
    if not clean:
        return []
    variants = [clean]
    other = isbn10_to_isbn13(clean) if len(clean) == 10 else isbn13_to_isbn10(clean)
    if other and other not in variants:
        variants.append(other)
    return variants
