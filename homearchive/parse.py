"""Parse and normalize OpenLibrary and Google Books API responses."""
import logging
from typing import Dict, Any, List, Optional

from homearchive.models import BookCandidate

logger = logging.getLogger(__name__)


def _text(value: Any) -> Optional[str]:
    """Trimmed string or None for blanks and non-strings."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _int(value: Any) -> Optional[int]:
    # bool is an int subclass; never a page count or a year
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


def _strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def to_https(url: Optional[str]) -> Optional[str]:
    """Force cover links onto https."""
    if not url:
        return None
    if url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


def pick_isbn(isbns: List[str]) -> Optional[str]:
    """Prefer a 13 character ISBN, else the first one available."""
    if not isbns:
        return None
    for isbn in isbns:
        if len(isbn) == 13:
            return isbn
    return isbns[0]


def parse_openlibrary_doc(
    doc: Dict[str, Any],
    covers_url: str = "https://covers.openlibrary.org/b",
    source: str = "openlibrary"
) -> Optional[BookCandidate]:
    """
    Parse a single document from an OpenLibrary search response.
    
    Args:
        doc: Single entry of the ``docs`` array
        covers_url: Base URL of the OpenLibrary covers service
        source: Provider name recorded on the candidate
        
    Returns:
        BookCandidate or None if the document has no usable title
    """
    try:
        title = _text(doc.get("title"))
        if not title:
            logger.debug(f"Skipping OpenLibrary doc with no title: {doc.get('key')}")
            return None
        
        authors = _strings(doc.get("author_name"))
        publishers = _strings(doc.get("publisher"))
        
        cover_url = None
        cover_id = _int(doc.get("cover_i"))
        if cover_id is not None:
            cover_url = to_https(f"{covers_url.rstrip('/')}/id/{cover_id}-M.jpg")
        
        return BookCandidate(
            title=title,
            author=", ".join(authors) if authors else None,
            isbn=pick_isbn(_strings(doc.get("isbn"))),
            publication_year=_int(doc.get("first_publish_year")),
            publisher=publishers[0] if publishers else None,
            page_count=_int(doc.get("number_of_pages_median")),
            cover_image_url=cover_url,
            source=source
        )
    except Exception as e:
        # One bad record must not sink its siblings
        logger.warning(f"Failed to parse OpenLibrary doc: {e}")
        return None


def parse_openlibrary_response(
    response_json: Any,
    covers_url: str = "https://covers.openlibrary.org/b",
    source: str = "openlibrary"
) -> List[BookCandidate]:
    """
    Parse a full OpenLibrary search response.
    
    Returns:
        List of candidates in response order (empty if no docs found)
    """
    if not isinstance(response_json, dict):
        logger.warning("OpenLibrary response is not a JSON object")
        return []
    
    docs = response_json.get("docs")
    if not isinstance(docs, list):
        logger.warning(f"OpenLibrary response 'docs' field is not a list: {type(docs).__name__}")
        return []
    
    books = []
    for doc in docs:
        if not isinstance(doc, dict):
            continue
        book = parse_openlibrary_doc(doc, covers_url, source)
        if book:
            books.append(book)
    
    logger.debug(f"Mapped {len(books)} of {len(docs)} OpenLibrary docs")
    return books


def _google_isbn(identifiers: Any) -> Optional[str]:
    if not isinstance(identifiers, list):
        return None
    
    by_type = {}
    first = None
    for identifier in identifiers:
        if not isinstance(identifier, dict):
            continue
        value = _text(identifier.get("identifier"))
        if not value:
            continue
        by_type.setdefault(identifier.get("type"), value)
        first = first or value
    
    return by_type.get("ISBN_13") or by_type.get("ISBN_10") or first


def _google_year(published_date: Any) -> Optional[int]:
    text = _text(published_date)
    if not text or len(text) < 4:
        return None
    try:
        return int(text[:4])
    except ValueError:
        logger.debug(f"Could not parse publication year from: {text}")
        return None


def parse_google_item(item: Dict[str, Any], source: str = "googlebooks") -> Optional[BookCandidate]:
    """
    Parse a single volume from a Google Books API response.
    
    Args:
        item: Single entry of the ``items`` array
        source: Provider name recorded on the candidate
        
    Returns:
        BookCandidate or None if the volume has no usable title
    """
    try:
        volume_info = item.get("volumeInfo")
        if not isinstance(volume_info, dict):
            return None
        
        title = _text(volume_info.get("title"))
        if not title:
            logger.debug(f"Skipping Google Books volume with no title: {item.get('id')}")
            return None
        
        authors = _strings(volume_info.get("authors"))
        categories = _strings(volume_info.get("categories"))
        
        # Extract thumbnail (prefer higher quality)
        image_links = volume_info.get("imageLinks")
        thumbnail = None
        if isinstance(image_links, dict):
            thumbnail = _text(image_links.get("thumbnail")) or _text(image_links.get("smallThumbnail"))
        
        rating = volume_info.get("averageRating")
        if isinstance(rating, bool) or not isinstance(rating, (int, float)):
            rating = None
        
        return BookCandidate(
            title=title,
            author=", ".join(authors) if authors else None,
            isbn=_google_isbn(volume_info.get("industryIdentifiers")),
            publication_year=_google_year(volume_info.get("publishedDate")),
            publisher=_text(volume_info.get("publisher")),
            page_count=_int(volume_info.get("pageCount")),
            description=_text(volume_info.get("description")),
            cover_image_url=to_https(thumbnail),
            category_name=categories[0] if categories else None,
            average_rating=float(rating) if rating is not None else None,
            rating_count=_int(volume_info.get("ratingsCount")),
            source=source
        )
    except Exception as e:
        logger.warning(f"Failed to parse Google Books item: {e}")
        return None


def parse_google_response(response_json: Any, source: str = "googlebooks") -> List[BookCandidate]:
    """
    Parse a full Google Books API response.
    
    Returns:
        List of candidates in response order (empty if no items found)
    """
    if not isinstance(response_json, dict):
        logger.warning("Google Books response is not a JSON object")
        return []
    
    items = response_json.get("items")
    if not isinstance(items, list) or not items:
        logger.debug("No books found in Google Books response")
        return []
    
    books = []
    for item in items:
        if not isinstance(item, dict):
            continue
        book = parse_google_item(item, source)
        if book:
            books.append(book)
    
    return books
