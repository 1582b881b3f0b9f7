"""SEC EDGAR client: ticker lookup, filing history retrieval and document download."""

import logging
import time
from typing import Any, Callable, Optional, Protocol

import httpx

from sec_packager.config import Settings, get_settings
from sec_packager.errors import FetchError, TickerNotFoundError
from sec_packager.models import Company, Filing

logger = logging.getLogger(__name__)

COMPANY_TICKERS_URL = "https://www.sec.gov/files/company_tickers.json"
SUBMISSIONS_URL = "https://data.sec.gov/submissions/CIK{cik}.json"
SUBMISSIONS_PAGE_URL = "https://data.sec.gov/submissions/{name}"
ARCHIVES_URL = "https://www.sec.gov/Archives/edgar/data/{cik}/{accession}"

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class TickerCache:
    """
    In-process cache of the SEC ticker -> company mapping.

    The table is refreshed wholesale by whichever caller first finds it
    missing or older than ``ttl_seconds``. Concurrent refreshes are not
    deduplicated, so two requests may both reload a stale table.
    """

    def __init__(self, ttl_seconds: float = 24 * 60 * 60, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._table: Optional[dict[str, dict]] = None
        self._loaded_at = 0.0

    def get(self, loader: Callable[[], dict[str, dict]]) -> dict[str, dict]:
        """Return the cached table, calling ``loader`` on first use or after expiry."""
        now = self._clock()
        if self._table is None or now - self._loaded_at >= self.ttl_seconds:
            self._table = loader()
            self._loaded_at = now
        return self._table

    def clear(self) -> None:
        self._table = None


_default_ticker_cache: Optional[TickerCache] = None


def default_ticker_cache(ttl_seconds: float) -> TickerCache:
    """Return the process-scoped ticker cache, creating it on first use."""
    global _default_ticker_cache
    if _default_ticker_cache is None:
        _default_ticker_cache = TickerCache(ttl_seconds)
    return _default_ticker_cache


def parse_ticker_table(data: Any) -> dict[str, dict]:
    """
    Index SEC's ``company_tickers.json`` payload by upper-case ticker.

    Args:
        data: Mapping of row number to ``{"cik_str", "ticker", "title"}``

    Returns:
        Dictionary mapping ticker to ``{"cik": str, "name": str}``
    """
    table: dict[str, dict] = {}
    rows = data.values() if isinstance(data, dict) else []
    for row in rows:
        if not isinstance(row, dict) or not row.get("ticker"):
            continue
        ticker = str(row["ticker"]).upper().strip()
        # first row wins, matching a linear scan of the SEC table
        if ticker in table:
            continue
        table[ticker] = {
            "cik": str(row.get("cik_str", "")),
            "name": str(row.get("title", "")),
        }
    return table


def parse_filing_columns(columns: Any) -> list[Filing]:
    """
    Convert a columnar submissions block into Filing objects.

    Submissions JSON stores filings as parallel arrays (``form``,
    ``accessionNumber``, ``filingDate``, ``primaryDocument``). Rows missing
    any of these fields, or with an unparseable date, are dropped.
    """
    if not isinstance(columns, dict):
        return []

    forms = columns.get("form") or []
    accessions = columns.get("accessionNumber") or []
    dates = columns.get("filingDate") or []
    documents = columns.get("primaryDocument") or []

    filings = []
    for form, accession, filing_date, document in zip(forms, accessions, dates, documents):
        if not form or not accession or not filing_date or not document:
            continue
        try:
            filings.append(
                Filing(
                    form_type=form,
                    accession_number=accession,
                    filing_date=filing_date,
                    primary_document=document,
                )
            )
        except ValueError:
            logger.debug("Skipping malformed submissions row %s", accession)
            continue
    return filings


def sort_newest_first(filings: list[Filing]) -> list[Filing]:
    """Sort by filing date descending; ties keep their original order."""
    return sorted(filings, key=lambda f: f.filing_date, reverse=True)


class RetrievalMode(Protocol):
    """Strategy for reading a company's filing history."""

    name: str

    def list_filings(self, client: "SECClient", cik: str) -> list[Filing]:
        ...


class RecentFilings:
    """Only the ``filings.recent`` window of the submissions document (fast)."""

    name = "recent"

    def list_filings(self, client: "SECClient", cik: str) -> list[Filing]:
        submissions = client.get_submissions(cik)
        recent = (submissions.get("filings") or {}).get("recent")
        return sort_newest_first(parse_filing_columns(recent))


class FullHistory:
    """
    The recent window merged with every archived submissions page.

    Older filings (for example a shelf registration from several years back)
    only appear in the pages listed under ``filings.files``.
    """

    name = "all"

    def list_filings(self, client: "SECClient", cik: str) -> list[Filing]:
        submissions = client.get_submissions(cik)
        block = submissions.get("filings") or {}
        filings = parse_filing_columns(block.get("recent"))

        for page in block.get("files") or []:
            name = page.get("name") if isinstance(page, dict) else None
            if not name:
                continue
            url = SUBMISSIONS_PAGE_URL.format(name=name)
            logger.debug("Fetching archived submissions page %s", url)
            filings.extend(parse_filing_columns(client.get_json(url)))

        seen: set[str] = set()
        merged = []
        for filing in filings:
            if filing.accession_number in seen:
                continue
            seen.add(filing.accession_number)
            merged.append(filing)

        return sort_newest_first(merged)


def retrieval_mode(all_filings: bool) -> RetrievalMode:
    """Pick the retrieval strategy for the ``all`` request flag."""
    return FullHistory() if all_filings else RecentFilings()


def archive_cik(cik: str) -> str:
    """CIK without leading zeros, as used in archive paths."""
    return cik.lstrip("0") or "0"


def filing_folder_url(cik: str, filing: Filing) -> str:
    """URL of the archive folder holding every document of a filing."""
    return ARCHIVES_URL.format(cik=archive_cik(cik), accession=filing.accession_number_raw)


def filing_archive_url(cik: str, filing: Filing) -> str:
    """URL of a filing's primary document."""
    return f"{filing_folder_url(cik, filing)}/{filing.primary_document}"


def filing_index_url(cik: str, filing: Filing) -> str:
    """URL of a filing's ``-index.html`` page listing its documents."""
    return f"{filing_folder_url(cik, filing)}/{filing.accession_number}-index.html"


class SECClient:
    """Client for looking up companies and retrieving SEC filings."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.Client] = None,
        ticker_cache: Optional[TickerCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the client.

        Args:
            settings: Settings to use (defaults to environment settings)
            http_client: Preconfigured httpx client (tests inject a mock transport)
            ticker_cache: Ticker table cache (defaults to the process-wide cache)
            sleep: Function used to wait between retries

        Raises:
            ConfigurationError: If SEC_USER_AGENT is not configured
        """
        self.settings = settings or get_settings()
        self.user_agent = self.settings.require_user_agent()
        self._headers = {
            "User-Agent": self.user_agent,
            "Accept-Encoding": "gzip, deflate",
        }
        self._http = http_client or httpx.Client(follow_redirects=True, timeout=self.settings.timeout)
        self._ticker_cache = ticker_cache or default_ticker_cache(self.settings.ticker_cache_ttl)
        self._sleep = sleep

    def __enter__(self) -> "SECClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    def fetch(self, url: str) -> httpx.Response:
        """
        GET a URL, retrying rate limits and transient failures.

        Retries HTTP 429/5xx responses and transport errors with exponential
        backoff (``backoff_base * 2 ** attempt``) up to ``max_attempts``.

        Raises:
            FetchError: On a non-retryable status or response error, or when
                attempts run out
        """
        attempts = self.settings.max_attempts
        last_status: Optional[int] = None
        last_detail = ""

        for attempt in range(attempts):
            try:
                response = self._http.get(url, headers=self._headers)
            except httpx.TransportError as e:
                last_status = None
                last_detail = str(e) or type(e).__name__
            except httpx.HTTPError as e:
                # Decoding and redirect errors are not transient
                raise FetchError(url, None, str(e) or type(e).__name__) from e
            else:
                if response.status_code < 400:
                    return response
                if response.status_code not in RETRYABLE_STATUS:
                    raise FetchError(url, response.status_code)
                last_status = response.status_code
                last_detail = ""

            if attempt + 1 < attempts:
                delay = self.settings.backoff_base * (2 ** attempt)
                logger.warning(
                    "GET %s attempt %d/%d failed (%s). Retrying in %.2fs",
                    url, attempt + 1, attempts, last_status or last_detail, delay,
                )
                self._sleep(delay)

        logger.error("GET %s failed after %d attempts", url, attempts)
        raise FetchError(url, last_status, last_detail or f"gave up after {attempts} attempts")

    def download(self, url: str) -> bytes:
        """Download a document and return its raw bytes."""
        return self.fetch(url).content

    def get_json(self, url: str) -> Any:
        response = self.fetch(url)
        try:
            return response.json()
        except ValueError as e:
            raise FetchError(url, response.status_code, "invalid JSON") from e

    def _load_ticker_table(self) -> dict[str, dict]:
        logger.info("Refreshing SEC ticker table")
        return parse_ticker_table(self.get_json(COMPANY_TICKERS_URL))

    def lookup_company(self, ticker: str) -> Company:
        """
        Find company by ticker.

        Args:
            ticker: Stock ticker symbol (case-insensitive)

        Returns:
            Company object with zero-padded CIK

        Raises:
            ValueError: If ticker is empty
            TickerNotFoundError: If ticker is not in the SEC mapping
        """
        if not ticker or not ticker.strip():
            raise ValueError("Ticker cannot be empty")

        ticker_upper = ticker.upper().strip()
        table = self._ticker_cache.get(self._load_ticker_table)
        company_info = table.get(ticker_upper)

        if company_info is None:
            raise TickerNotFoundError(ticker)

        # Zero-pad CIK to 10 digits
        return Company(
            ticker=ticker_upper,
            cik=company_info["cik"].zfill(10),
            name=company_info["name"],
        )

    def get_submissions(self, cik: str) -> dict:
        data = self.get_json(SUBMISSIONS_URL.format(cik=cik.zfill(10)))
        return data if isinstance(data, dict) else {}

    def list_filings(self, cik: str, mode: Optional[RetrievalMode] = None) -> list[Filing]:
        """
        Get a company's filings, newest first.

        Args:
            cik: Company CIK (will be normalized to 10 digits)
            mode: Retrieval strategy (defaults to the recent window)

        Returns:
            List of Filing objects sorted by date descending
        """
        mode = mode or RecentFilings()
        filings = mode.list_filings(self, cik.zfill(10))
        logger.info("Retrieved %d filings for CIK %s (%s)", len(filings), cik, mode.name)
        return filings
