"""Merge and deduplicate candidates coming from several providers."""
import logging
from typing import List, Sequence, Set

from homearchive.models import BookCandidate
from homearchive.normalize import normalize_isbn, normalize_title

logger = logging.getLogger(__name__)


def merge_candidates(result_lists: Sequence[Sequence[BookCandidate]]) -> List[BookCandidate]:
    """
    Combine per-provider result lists into one deduplicated list.
    
    Lists must be given in provider priority order. The first candidate seen
    for a normalized ISBN or a normalized title wins; later ones are dropped.
    A title match alone is enough to drop a candidate, even when both carry
    different ISBNs, so two distinct books sharing a title collapse into one.
    
    Args:
        result_lists: Candidate lists ordered by provider priority
        
    Returns:
        Deduplicated candidates in first-seen order
    """
    seen_isbns: Set[str] = set()
    seen_titles: Set[str] = set()
    merged = []
    
    for results in result_lists:
        for candidate in results:
            isbn_key = normalize_isbn(candidate.isbn)
            title_key = normalize_title(candidate.title)
            
            if isbn_key and isbn_key in seen_isbns:
                logger.debug(f"Dropping duplicate by ISBN: {candidate.title} ({isbn_key})")
                continue
            if title_key and title_key in seen_titles:
                logger.debug(f"Dropping duplicate by title: {candidate.title}")
                continue
            
            merged.append(candidate)
            if isbn_key:
                seen_isbns.add(isbn_key)
            if title_key:
                seen_titles.add(title_key)
    
    return merged
