"""Request building and response mapping for each external book API."""
from typing import Any, Dict, List, Optional, Tuple

from homearchive.models import BookCandidate
from homearchive.parse import parse_openlibrary_response, parse_google_response

USER_AGENT = "TheHomeArchive/1.0"

QUERY = "query"
ISBN = "isbn"
TITLE = "title"
AUTHOR = "author"
SEARCH_KINDS = (QUERY, ISBN, TITLE, AUTHOR)


class ProviderApi:
    """Provider wire conventions, independent of the HTTP transport."""
    
    name = "provider"
    MAX_PAGE_SIZE = 20
    
    def page_size(self, limit: int) -> int:
        """Clamp a requested limit into ``1..MAX_PAGE_SIZE``."""
        return max(1, min(limit, self.MAX_PAGE_SIZE))
    
    def build_request(self, kind: str, value: str, limit: int) -> Tuple[str, Dict[str, Any]]:
        raise NotImplementedError
    
    def parse_response(self, payload: Any) -> List[BookCandidate]:
        raise NotImplementedError
    
    @property
    def headers(self) -> Dict[str, str]:
        return {"User-Agent": USER_AGENT, "Accept": "application/json"}


class OpenLibraryApi(ProviderApi):
    """OpenLibrary search.json: dedicated isbn/title/author parameters."""
    
    name = "openlibrary"
    MAX_PAGE_SIZE = 100
    ISBN_LIMIT = 10
    
    def __init__(
        self,
        search_url: str = "https://openlibrary.org/search.json",
        covers_url: str = "https://covers.openlibrary.org/b",
        fields: Optional[str] = None
    ):
        self.search_url = search_url
        self.covers_url = covers_url
        self.fields = fields or (
            "key,title,author_name,first_publish_year,isbn,publisher,language,"
            "subject,cover_i,cover_edition_key,number_of_pages_median"
        )
    
    def build_request(self, kind: str, value: str, limit: int) -> Tuple[str, Dict[str, Any]]:
        if kind not in SEARCH_KINDS:
            raise ValueError(f"Unknown search kind: {kind}")
        
        if kind == ISBN:
            params = {
                "isbn": "".join(value.split()).replace("-", ""),
                "fields": self.fields,
                "limit": self.ISBN_LIMIT
            }
        else:
            params = {
                "q" if kind == QUERY else kind: value.strip(),
                "fields": self.fields,
                "limit": self.page_size(limit),
                "offset": 0
            }
        return self.search_url, params
    
    def parse_response(self, payload: Any) -> List[BookCandidate]:
        return parse_openlibrary_response(payload, self.covers_url, self.name)


class GoogleBooksApi(ProviderApi):
    """Google Books volumes endpoint: isbn:/intitle:/inauthor: query operators."""
    
    name = "googlebooks"
    MAX_PAGE_SIZE = 40  # API limit
    
    OPERATORS = {QUERY: "", ISBN: "isbn:", TITLE: "intitle:", AUTHOR: "inauthor:"}
    
    def __init__(
        self,
        base_url: str = "https://www.googleapis.com/books/v1",
        api_key: Optional[str] = None,
        max_results: int = 20
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.max_results = max_results
    
    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())
    
    def page_size(self, limit: int) -> int:
        return max(1, min(limit, self.max_results, self.MAX_PAGE_SIZE))
    
    def build_request(self, kind: str, value: str, limit: int) -> Tuple[str, Dict[str, Any]]:
        if kind not in self.OPERATORS:
            raise ValueError(f"Unknown search kind: {kind}")
        
        params = {
            "q": self.OPERATORS[kind] + value.strip(),
            "maxResults": 1 if kind == ISBN else self.page_size(limit)
        }
        if self.has_api_key:
            params["key"] = self.api_key.strip()
        
        return f"{self.base_url}/volumes", params
    
    def parse_response(self, payload: Any) -> List[BookCandidate]:
        return parse_google_response(payload, self.name)
