"""Tests for the SEC EDGAR client."""

from datetime import date
from unittest.mock import Mock

import httpx
import pytest

from sec_packager.client import (
    FullHistory,
    RecentFilings,
    SECClient,
    TickerCache,
    filing_archive_url,
    filing_index_url,
    parse_filing_columns,
    parse_ticker_table,
    retrieval_mode,
)
from sec_packager.config import Settings
from sec_packager.errors import ConfigurationError, FetchError, TickerNotFoundError
from sec_packager.models import Company, Filing

from conftest import load_json


class TestCompanyModel:
    """Test Company model validation."""

    def test_valid_company(self):
        """Test creating a valid Company."""
        company = Company(ticker="AAPL", cik="0000320193", name="Apple Inc.")
        assert company.ticker == "AAPL"
        assert company.cik == "0000320193"
        assert company.name == "Apple Inc."

    def test_invalid_company_missing_field(self):
        """Test that Company rejects missing fields."""
        with pytest.raises(Exception):  # Pydantic validation error
            Company(ticker="AAPL", cik="320193")  # Missing name


class TestFilingModel:
    """Test Filing model validation."""

    def test_valid_filing(self):
        """Test creating a valid Filing."""
        filing = Filing(
            form_type="10-K",
            filing_date=date(2023, 11, 3),
            accession_number="0000320193-23-000077",
            primary_document="aapl-20230930.htm",
        )
        assert filing.form_type == "10-K"
        assert filing.filing_date == date(2023, 11, 3)
        assert filing.accession_number_raw == "000032019323000077"

    def test_invalid_filing_bad_date(self):
        """Test that Filing rejects invalid date format."""
        with pytest.raises(Exception):  # Pydantic validation error
            Filing(
                form_type="10-K",
                filing_date="not-a-date",
                accession_number="0000320193-23-000077",
                primary_document="aapl.htm",
            )

    def test_filing_is_immutable(self):
        """Test that filings cannot be modified once retrieved."""
        filing = Filing(
            form_type="10-K",
            filing_date=date(2023, 11, 3),
            accession_number="0000320193-23-000077",
            primary_document="aapl.htm",
        )
        with pytest.raises(Exception):
            filing.form_type = "10-Q"


class TestConfiguration:
    """Test the User-Agent requirement."""

    def test_missing_user_agent_raises_before_network(self, edgar):
        """Test that a missing User-Agent fails before any request is made."""
        transport = httpx.MockTransport(edgar)
        with pytest.raises(ConfigurationError, match="SEC_USER_AGENT"):
            SECClient(Settings(user_agent="   "), http_client=httpx.Client(transport=transport))
        assert edgar.requests == []

    def test_user_agent_sent_on_every_request(self, client, edgar):
        """Test that requests identify the client."""
        client.lookup_company("AAPL")
        client.list_filings("320193")
        assert len(edgar.requests) == 2
        for request in edgar.requests:
            assert request.headers["User-Agent"] == "TestSuite test@example.com"


class TestLookupCompany:
    """Test SECClient.lookup_company() method."""

    def test_valid_ticker_returns_company(self, client):
        """Test that valid ticker returns Company object."""
        company = client.lookup_company("AAPL")
        assert isinstance(company, Company)
        assert company.ticker == "AAPL"
        assert company.name == "Apple Inc."

    def test_invalid_ticker_raises_not_found(self, client):
        """Test that invalid ticker raises TickerNotFoundError."""
        with pytest.raises(TickerNotFoundError, match="not found"):
            client.lookup_company("INVALID")

    def test_not_found_is_value_error(self, client):
        """Test that TickerNotFoundError is still a ValueError."""
        with pytest.raises(ValueError):
            client.lookup_company("INVALID")

    def test_empty_ticker_raises_value_error(self, client):
        """Test that empty ticker raises ValueError."""
        with pytest.raises(ValueError, match="cannot be empty"):
            client.lookup_company("")
        with pytest.raises(ValueError, match="cannot be empty"):
            client.lookup_company("   ")

    def test_case_insensitive_lookup(self, client):
        """Test that lookup is case-insensitive."""
        company1 = client.lookup_company("aapl")
        company2 = client.lookup_company("AAPL")
        company3 = client.lookup_company("AaPl")
        assert company1.ticker == company2.ticker == company3.ticker == "AAPL"

    def test_cik_zero_padding(self, client):
        """Test that CIK is zero-padded to 10 digits."""
        company = client.lookup_company("AAPL")
        assert len(company.cik) == 10
        assert company.cik == "0000320193"

        company2 = client.lookup_company("MSFT")
        assert len(company2.cik) == 10
        assert company2.cik == "0000789019"

    def test_first_row_wins_for_duplicate_tickers(self):
        """Test that the first mapping row for a ticker is kept."""
        table = parse_ticker_table(load_json("company_tickers.json"))
        assert table["AAPL"] == {"cik": "320193", "name": "Apple Inc."}

    def test_ticker_table_fetched_once(self, client, edgar):
        """Test that the ticker table is cached between lookups."""
        client.lookup_company("AAPL")
        client.lookup_company("MSFT")
        assert edgar.urls.count("https://www.sec.gov/files/company_tickers.json") == 1


class TestTickerCache:
    """Test the time-bounded ticker table cache."""

    def test_loads_on_first_use(self):
        """Test that the loader runs on the first read."""
        loader = Mock(return_value={"AAPL": {}})
        cache = TickerCache(ttl_seconds=60, clock=lambda: 0.0)
        assert cache.get(loader) == {"AAPL": {}}
        loader.assert_called_once()

    def test_reuses_fresh_table(self):
        """Test that a fresh table is served without reloading."""
        now = [0.0]
        loader = Mock(return_value={})
        cache = TickerCache(ttl_seconds=60, clock=lambda: now[0])
        cache.get(loader)
        now[0] = 59.0
        cache.get(loader)
        assert loader.call_count == 1

    def test_refreshes_stale_table(self):
        """Test that an expired table is reloaded wholesale."""
        now = [0.0]
        loader = Mock(side_effect=[{"OLD": {}}, {"NEW": {}}])
        cache = TickerCache(ttl_seconds=60, clock=lambda: now[0])
        assert cache.get(loader) == {"OLD": {}}
        now[0] = 60.0
        assert cache.get(loader) == {"NEW": {}}

    def test_clear_forces_reload(self):
        """Test that clear() drops the cached table."""
        loader = Mock(return_value={})
        cache = TickerCache(ttl_seconds=60, clock=lambda: 0.0)
        cache.get(loader)
        cache.clear()
        cache.get(loader)
        assert loader.call_count == 2


class TestListFilings:
    """Test SECClient.list_filings() and the retrieval strategies."""

    def test_recent_mode_reads_recent_window(self, client):
        """Test that recent mode returns only filings.recent rows."""
        filings = client.list_filings("320193", RecentFilings())

        assert len(filings) == 9  # one row lacks a primary document
        assert "0000320193-21-000050" not in {f.accession_number for f in filings}

    def test_default_mode_is_recent(self, client, edgar):
        """Test that list_filings defaults to the recent window."""
        client.list_filings("320193")
        assert not any("submissions-001" in url for url in edgar.urls)

    def test_full_history_merges_archived_pages(self, client, edgar):
        """Test that full history adds filings from archived pages."""
        filings = client.list_filings("320193", FullHistory())
        accessions = [f.accession_number for f in filings]

        assert "0000320193-21-000050" in accessions  # S-3 only in archived page
        assert len(accessions) == len(set(accessions))
        assert len(filings) == 12
        assert "https://data.sec.gov/submissions/CIK0000320193-submissions-001.json" in edgar.urls

    def test_results_sorted_newest_first(self, client):
        """Test that results are sorted by date descending."""
        filings = client.list_filings("320193", FullHistory())
        dates = [f.filing_date for f in filings]
        assert dates == sorted(dates, reverse=True)

    def test_rows_missing_fields_are_dropped(self):
        """Test that incomplete submissions rows are skipped."""
        filings = parse_filing_columns({
            "form": ["10-K", "10-Q", ""],
            "accessionNumber": ["a-1", "a-2", "a-3"],
            "filingDate": ["2023-01-01", "bad-date", "2023-03-01"],
            "primaryDocument": ["k.htm", "q.htm", "x.htm"],
        })
        assert [f.accession_number for f in filings] == ["a-1"]

    def test_missing_recent_block_returns_empty(self, client):
        """Test that a company without filings yields an empty list."""
        assert client.list_filings("1234567") == []

    def test_retrieval_mode_selection(self):
        """Test that the all flag picks the strategy."""
        assert isinstance(retrieval_mode(True), FullHistory)
        assert isinstance(retrieval_mode(False), RecentFilings)


class TestFetch:
    """Test retry and error handling in SECClient.fetch()."""

    URL = "https://www.sec.gov/Archives/edgar/data/320193/000032019323000106/aapl.htm"

    def test_retries_rate_limit_then_succeeds(self, make_client, edgar):
        """Test that 429 and 503 responses are retried."""
        sleep = Mock()
        client = make_client(sleep=sleep)
        edgar.overrides[self.URL] = [429, 503, 200]

        assert client.download(self.URL) == b"<html>aapl.htm</html>"
        assert len(edgar.requests) == 3
        assert sleep.call_count == 2

    def test_backoff_is_exponential(self, make_client, settings, edgar):
        """Test that delays double between attempts."""
        sleep = Mock()
        client = make_client(
            client_settings=Settings(user_agent="TestSuite test@example.com", backoff_base=0.5, max_attempts=4),
            sleep=sleep,
        )
        edgar.overrides[self.URL] = 500

        with pytest.raises(FetchError):
            client.download(self.URL)
        assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0, 2.0]

    def test_exhausted_attempts_raise_fetch_error(self, client, edgar):
        """Test that running out of attempts names the URL and status."""
        edgar.overrides[self.URL] = 503

        with pytest.raises(FetchError) as exc_info:
            client.download(self.URL)
        assert exc_info.value.url == self.URL
        assert exc_info.value.status == 503
        assert self.URL in str(exc_info.value)
        assert len(edgar.requests) == 3

    def test_non_retryable_status_fails_immediately(self, client, edgar):
        """Test that a 404 is not retried."""
        edgar.overrides[self.URL] = 404

        with pytest.raises(FetchError, match="HTTP 404"):
            client.download(self.URL)
        assert len(edgar.requests) == 1

    def test_transport_errors_are_retried(self, client, edgar):
        """Test that connection failures are retried."""
        calls = []

        def flaky(request):
            calls.append(request)
            if len(calls) < 2:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, content=b"ok")

        edgar.overrides[self.URL] = flaky
        assert client.download(self.URL) == b"ok"
        assert len(calls) == 2

    def test_undecodable_body_raises_fetch_error(self, client, edgar):
        """Test that a corrupt compressed body is a fetch failure, not retried."""
        edgar.overrides[self.URL] = lambda request: httpx.Response(
            200, headers={"Content-Encoding": "gzip"}, content=b"not gzip"
        )

        with pytest.raises(FetchError) as exc_info:
            client.download(self.URL)
        assert exc_info.value.url == self.URL
        assert exc_info.value.status is None
        assert len(edgar.requests) == 1

    def test_invalid_json_raises_fetch_error(self, client, edgar):
        """Test that a non-JSON registry response is a fetch failure."""
        edgar.overrides["https://www.sec.gov/files/company_tickers.json"] = (
            lambda request: httpx.Response(200, content=b"<html>maintenance</html>")
        )
        with pytest.raises(FetchError, match="invalid JSON"):
            client.lookup_company("AAPL")


class TestUrls:
    """Test archive URL construction."""

    FILING = Filing(
        form_type="10-K",
        filing_date=date(2023, 10, 27),
        accession_number="0000320193-23-000106",
        primary_document="aapl-20230930.htm",
    )

    def test_archive_url_strips_cik_padding(self):
        """Test that archive paths use the unpadded CIK."""
        assert filing_archive_url("0000320193", self.FILING) == (
            "https://www.sec.gov/Archives/edgar/data/320193/000032019323000106/aapl-20230930.htm"
        )

    def test_index_url(self):
        """Test the filing index URL."""
        assert filing_index_url("0000320193", self.FILING) == (
            "https://www.sec.gov/Archives/edgar/data/320193/000032019323000106/"
            "0000320193-23-000106-index.html"
        )
