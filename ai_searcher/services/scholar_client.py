# ai_searcher/services/scholar_client.py
import asyncio
import aiohttp
import logging
import random
import re
from datetime import datetime
from typing import List, Optional, Tuple
from urllib.parse import urlencode

from bs4 import BeautifulSoup

from ai_searcher.config.settings import settings
from ai_searcher.core.exceptions import (
    SearchEngineException, ScholarRateLimitedException, ScholarUnavailableException
)
from ai_searcher.core.outcome import Outcome, Failure, FailureKind
from ai_searcher.models.internal import ScholarSearchResult
from ai_searcher.services.cache_service import CacheService, build_cache_key
from ai_searcher.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

NON_RETRYABLE_ERRORS = {"blocked", "parsing", "quota_exceeded"}

ERROR_MESSAGES = {
    "network": "Network connection error while contacting Google Scholar.",
    "timeout": "Google Scholar did not respond in time.",
    "blocked": "Access to Google Scholar is currently blocked. Please try again later.",
    "service_unavailable": "Google Scholar is temporarily unavailable.",
    "quota_exceeded": "Daily search quota exceeded. Please try again tomorrow.",
    "parsing": "Unable to parse search results.",
}

BLOCK_INDICATORS = ("captcha", "unusual traffic", "automated queries")

TITLE_MARKER_RE = re.compile(r"^\s*\[(?:PDF|HTML|BOOK|B|CITATION|C|DOC)\]\s*", re.IGNORECASE)
CITED_BY_RE = re.compile(r"Cited by\s+(\d+)", re.IGNORECASE)
YEAR_RE = re.compile(r"\b(19\d{2}|20\d{2})\b")
DOI_RE = re.compile(r"10\.\d{4,9}/[^\s<>\"'&?#]+")
NON_AUTHOR_RE = re.compile(r"^(and|et|al|etc|vol|pp|page|pages|doi|isbn|issn|url|http|www)\.?$", re.IGNORECASE)

MAX_AUTHORS = 10

class _FetchError(SearchEngineException):
    def __init__(self, message: str, error_type: str, status: Optional[int] = None,
                 retry_after: Optional[float] = None):
        super().__init__(message)
        self.error_type = error_type
        self.status = status
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return self.error_type not in NON_RETRYABLE_ERRORS

def classify_error(error: Exception) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "timeout"
    message = str(error).lower()
    if "timeout" in message:
        return "timeout"
    if "blocked" in message or "403" in message or "forbidden" in message:
        return "blocked"
    if "service unavailable" in message or "503" in message or "502" in message:
        return "service_unavailable"
    if "quota" in message:
        return "quota_exceeded"
    if "parse" in message:
        return "parsing"
    return "network"

def _collapse(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").replace("\xa0", " ")).strip()

def _is_author_name(name: str) -> bool:
    if len(name) < 2 or len(name) > 100:
        return False
    if not re.search(r"[A-Za-z]", name):
        return False
    return not NON_AUTHOR_RE.match(name)

def parse_byline(byline: str) -> Tuple[List[str], Optional[str], Optional[int]]:
    """
    Split a result byline of the form "A Author, B Author - Journal, 2020 - host.com"
    into authors, journal and year.
    """
    byline = _collapse(byline)
    if not byline:
        return [], None, None

    parts = re.split(r"\s+-\s+", byline)
    authors_part = parts[0].replace("…", "")
    separator = ";" if ";" in authors_part else ","
    authors = [a.strip() for a in authors_part.split(separator)]
    authors = [a for a in authors if _is_author_name(a)][:MAX_AUTHORS]

    journal = None
    if len(parts) >= 2:
        venue = parts[1].replace("…", "").strip()
        match = re.match(r"^([^,]+?)(?:,\s*(?:19|20)\d{2}.*|$)", venue)
        candidate = match.group(1).strip() if match else None
        looks_like_host = len(parts) == 2 and candidate and re.match(r"^[\w.-]+\.[a-z]{2,}$", candidate)
        if candidate and len(candidate) > 3 and not candidate.isdigit() and not looks_like_host:
            journal = candidate

    year = None
    max_year = datetime.utcnow().year + 1
    for found in YEAR_RE.findall(" - ".join(parts[1:]) or byline):
        if 1900 <= int(found) <= max_year:
            year = int(found)
            break

    return authors, journal, year

def extract_doi(*texts: Optional[str]) -> Optional[str]:
    for text in texts:
        if not text:
            continue
        match = DOI_RE.search(text)
        if match:
            return match.group(0).rstrip(".,;)]")
    return None

class GoogleScholarClient:
    """
    Scrapes Google Scholar result pages. Owns the retry/backoff policy and
    consults a per-process rate limiter before issuing any request.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        rate_limiter: Optional[RateLimiter] = None,
        cache: Optional[CacheService] = None
    ):
        self.base_url = base_url or settings.SCHOLAR_BASE_URL
        self.timeout = timeout or settings.SCHOLAR_TIMEOUT
        self.max_retries = max_retries or settings.SCHOLAR_MAX_RETRIES
        self.base_delay = settings.SCHOLAR_BASE_DELAY if base_delay is None else base_delay
        self.max_delay = settings.SCHOLAR_MAX_DELAY if max_delay is None else max_delay
        self.rate_limiter = rate_limiter or RateLimiter()
        self.cache = cache or CacheService()
        self.session = None
        self.last_error: Optional[str] = None

    async def _get_session(self):
        """Lazy initialization of HTTP session"""
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={
                    "User-Agent": settings.SCHOLAR_USER_AGENT,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                    "Accept-Language": "en-US,en;q=0.5",
                }
            )
        return self.session

    def build_search_url(
        self,
        query: str,
        max_results: Optional[int] = None,
        year_start: Optional[int] = None,
        year_end: Optional[int] = None,
        sort_by: str = "relevance"
    ) -> str:
        params = {"q": query, "hl": "en", "num": min(max_results or settings.SCHOLAR_MAX_RESULTS, 20)}
        if year_start:
            params["as_ylo"] = year_start
        if year_end:
            params["as_yhi"] = year_end
        if sort_by == "date":
            params["scisbd"] = 1
        return f"{self.base_url}?{urlencode(params)}"

    def _backoff_delay(self, retry: int) -> float:
        delay = self.base_delay * (2 ** (retry - 1))
        delay += random.uniform(0, delay * 0.1)
        return min(delay, self.max_delay)

    def _acquire_slot(self):
        """Every scrape, retries included, spends one request from the limiter"""
        if not self.rate_limiter.try_acquire():
            retry_after = self.rate_limiter.time_until_available()
            raise ScholarRateLimitedException(
                f"Search rate limit exceeded. Try again in {retry_after:.0f} seconds.",
                retry_after=retry_after
            )

    async def search(
        self,
        query: str,
        max_results: Optional[int] = None,
        year_start: Optional[int] = None,
        year_end: Optional[int] = None,
        sort_by: str = "relevance"
    ) -> List[ScholarSearchResult]:
        if not query or not query.strip():
            raise ScholarUnavailableException("Search query cannot be empty", error_type="parsing")

        cache_key = build_cache_key(query, max_results, year_start, year_end, sort_by)
        cached = await self.cache.get(cache_key, "scholar")
        if cached is not None:
            logger.info(f"Cache hit for scholar query: {query[:50]}")
            return [ScholarSearchResult.model_validate(r) for r in cached]

        url = self.build_search_url(query, max_results, year_start, year_end, sort_by)
        last_error: Optional[_FetchError] = None
        attempts = 0

        for attempt in range(1, self.max_retries + 1):
            attempts = attempt
            if attempt > 1:
                delay = self._backoff_delay(attempt - 1)
                logger.info(f"Retrying scholar search {attempt}/{self.max_retries} after {delay:.2f}s")
                await asyncio.sleep(delay)
            self._acquire_slot()

            try:
                html = await self._fetch(url)
            except ScholarRateLimitedException:
                raise
            except _FetchError as e:
                last_error = e
                logger.warning(f"Scholar search attempt {attempt} failed ({e.error_type}): {e}")
                if not e.retryable:
                    break
                continue

            results = self.parse_results(html)
            self.last_error = None
            if results:
                await self.cache.set(
                    cache_key,
                    [r.model_dump(mode="json") for r in results],
                    ttl=settings.CACHE_TTL_SEARCH_RESULTS,
                    namespace="scholar"
                )
            logger.info(f"Scholar search returned {len(results)} results for: {query[:50]}")
            return results

        if last_error.error_type == "parsing":
            logger.warning("Scholar returned an unparseable page, returning no results")
            return []

        self.last_error = last_error.error_type
        logger.error(f"Scholar search failed after {attempts} attempt(s): {last_error}")
        raise ScholarUnavailableException(
            ERROR_MESSAGES.get(last_error.error_type, str(last_error)),
            error_type=last_error.error_type,
            attempts=attempts
        )

    async def _fetch(self, url: str) -> str:
        session = await self._get_session()
        try:
            async with session.get(url) as response:
                status = response.status
                retry_after_header = response.headers.get("Retry-After")
                retry_after = float(retry_after_header) if (retry_after_header or "").isdigit() else None

                if status == 429:
                    wait = retry_after or 60.0
                    self.rate_limiter.block(wait)
                    raise ScholarRateLimitedException(
                        "Google Scholar rate limit exceeded. Please wait before searching again.",
                        retry_after=wait
                    )
                if status == 403:
                    raise _FetchError("Access blocked by Google Scholar", "blocked", status)
                if status in (500, 502, 503, 504):
                    raise _FetchError(
                        f"Google Scholar service unavailable ({status})", "service_unavailable",
                        status, retry_after
                    )
                if status != 200:
                    raise _FetchError(f"HTTP {status}", "network", status)

                html = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            error_type = classify_error(e)
            raise _FetchError(str(e) or e.__class__.__name__, error_type) from e

        if not html or len(html) < 100:
            raise _FetchError("Received empty or invalid response from Google Scholar", "parsing")

        lowered = html.lower()
        if "gs_r" not in lowered and any(indicator in lowered for indicator in BLOCK_INDICATORS):
            raise _FetchError("Google Scholar returned a captcha page", "blocked")

        return html

    def parse_results(self, html: str) -> List[ScholarSearchResult]:
        """Parse a result page; malformed markup yields an empty list"""
        if not html or not isinstance(html, str):
            return []

        try:
            soup = BeautifulSoup(html, "html.parser")
            blocks = soup.select("div.gs_r")
        except Exception as e:
            logger.warning(f"Failed to parse scholar markup: {e}")
            return []

        results = []
        for block in blocks:
            try:
                result = self._parse_block(block)
            except (AttributeError, TypeError, ValueError) as e:
                logger.debug(f"Skipping malformed scholar result: {e}")
                continue
            if result is not None:
                results.append(result)
        return results

    def _parse_block(self, block) -> Optional[ScholarSearchResult]:
        heading = block.select_one("h3.gs_rt")
        if heading is None:
            return None

        link = heading.find("a")
        title = _collapse(heading.get_text(" "))
        while TITLE_MARKER_RE.match(title):
            title = TITLE_MARKER_RE.sub("", title, count=1)
        if not title:
            return None
        url = link.get("href") if link is not None else None

        byline = block.select_one("div.gs_a")
        authors, journal, year = parse_byline(byline.get_text() if byline is not None else "")

        citations = None
        footer = block.select_one("div.gs_fl") or block
        cited = CITED_BY_RE.search(footer.get_text(" "))
        if cited:
            citations = int(cited.group(1))

        snippet = block.select_one("div.gs_rs")
        abstract = _collapse(snippet.get_text(" ")) if snippet is not None else None

        hrefs = " ".join(a.get("href", "") for a in block.find_all("a"))
        doi = extract_doi(url, hrefs, block.get_text(" "))

        return ScholarSearchResult(
            title=title,
            authors=authors,
            journal=journal,
            year=year,
            citations=citations,
            doi=doi,
            url=url,
            abstract=abstract or None
        )

    def get_rate_limit_status(self) -> dict:
        status = self.rate_limiter.get_status()
        status["last_error"] = self.last_error
        return status

    async def health_check(self) -> str:
        if self.last_error == "blocked":
            return "unhealthy"
        if not self.rate_limiter.can_make_request() or self.last_error:
            return "degraded"
        return "healthy"

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

class ScholarSearchProvider:
    """Wraps the scholar client so every call returns an Outcome"""

    def __init__(self, client: Optional[GoogleScholarClient] = None):
        self.client = client or GoogleScholarClient()

    def manual_search_url(self, query: str, year_start: Optional[int] = None,
                          year_end: Optional[int] = None) -> str:
        return self.client.build_search_url(query, year_start=year_start, year_end=year_end)

    async def search(
        self,
        query: str,
        max_results: Optional[int] = None,
        year_start: Optional[int] = None,
        year_end: Optional[int] = None,
        sort_by: str = "relevance"
    ) -> Outcome[List[ScholarSearchResult]]:
        try:
            results = await self.client.search(query, max_results, year_start, year_end, sort_by)
            return Outcome.success(results)
        except ScholarRateLimitedException as e:
            logger.warning(f"Scholar search rate limited: {e}")
            return Outcome.failed(Failure(
                kind=FailureKind.RATE_LIMITED,
                message=str(e),
                source="scholar",
                retry_after=e.retry_after,
                fallback_url=self.manual_search_url(query, year_start, year_end)
            ), fallback=[])
        except ScholarUnavailableException as e:
            kind = FailureKind.TIMEOUT if e.error_type == "timeout" else FailureKind.UPSTREAM_UNAVAILABLE
            return Outcome.failed(Failure(
                kind=kind,
                message=str(e),
                source="scholar",
                fallback_url=self.manual_search_url(query, year_start, year_end)
            ), fallback=[])

    def get_rate_limit_status(self) -> dict:
        return self.client.get_rate_limit_status()

    async def health_check(self) -> str:
        return await self.client.health_check()

    async def close(self):
        await self.client.close()
