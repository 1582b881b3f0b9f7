"""
Streaming ZIP assembly for a filing pack.

:class:`PackBuilder` resolves and selects up front (so fatal errors surface
before any bytes are sent), then streams the archive filing by filing.
Per-filing failures are recorded in the audit files instead of aborting.
"""

import csv
import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Iterator, Optional

from sec_packager.client import (
    SECClient,
    filing_archive_url,
    filing_folder_url,
    filing_index_url,
    retrieval_mode,
)
from sec_packager.errors import FetchError, NoEligibleFilingsError
from sec_packager.index_parser import extract_docs
from sec_packager.models import (
    CandidateAudit,
    Company,
    ExhibitDoc,
    Filing,
    PackRequest,
    SelectedFiling,
)
from sec_packager.prompt import render_checklist
from sec_packager.selector import audit_candidates, select_pack
from sec_packager.triage import ExhibitTriage

logger = logging.getLogger(__name__)

FILINGS_AUDIT_COLUMNS = [
    "filing_date", "form", "accession_number", "primary_document", "selected", "reason",
]
DOCS_INVENTORY_COLUMNS = [
    "filing_date", "form", "accession_number", "seq", "type", "description",
    "document", "size", "status", "reason", "url",
]

EXHIBITS_DISABLED = "exhibits disabled"
PRIMARY_DOCUMENT = "primary document (saved under filings/)"


def safe_name(value: str) -> str:
    """Replace characters that are unsafe in archive member names."""
    return re.sub(r"[^a-zA-Z0-9._-]+", "_", value)


def archive_filename(ticker: str) -> str:
    return f"{safe_name(ticker.upper())}_sec_pack.zip"


def filing_stem(filing: Filing) -> str:
    return safe_name(f"{filing.filing_date}__{filing.form_type}__{filing.accession_number}")


class _ChunkSink:
    """Write-only, non-seekable file object collecting bytes written by zipfile."""

    def __init__(self) -> None:
        self._chunks: list[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


class ZipStream:
    """
    Incremental ZIP writer.

    Each :meth:`add` returns the bytes produced for that member so callers
    can forward them immediately; :meth:`close` returns the central
    directory.
    """

    def __init__(self, compresslevel: int = 9) -> None:
        self._sink = _ChunkSink()
        self._zip = zipfile.ZipFile(
            self._sink, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=compresslevel,
        )

    def add(self, name: str, data: bytes | str) -> bytes:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._zip.writestr(name, data)
        return self._sink.drain()

    def close(self) -> bytes:
        self._zip.close()
        return self._sink.drain()


@dataclass
class PackPlan:
    """Everything decided before streaming starts."""

    request: PackRequest
    company: Company
    as_of: date
    filings: list[Filing]
    selection: list[SelectedFiling]
    candidates: list[CandidateAudit]


@dataclass
class InventoryRow:
    filing: Filing
    doc: ExhibitDoc
    status: str
    reason: str
    url: str


@dataclass
class PackReport:
    """Audit trail accumulated while streaming."""

    inventory: list[InventoryRow] = field(default_factory=list)
    missing: list[tuple[Filing, str, str]] = field(default_factory=list)
    exhibits_downloaded: int = 0
    exhibit_bytes: int = 0


class PackBuilder:
    """Builds a filing pack archive for one request."""

    def __init__(self, client: SECClient) -> None:
        self.client = client

    def prepare(self, request: PackRequest) -> PackPlan:
        """
        Resolve the company and select filings.

        Raises:
            TickerNotFoundError: If the ticker is not in the SEC mapping
            FetchError: If the registry cannot be reached
            NoEligibleFilingsError: If no filing passes the selection rules
        """
        company = self.client.lookup_company(request.ticker)
        as_of = request.as_of or date.today()
        filings = self.client.list_filings(company.cik, retrieval_mode(request.all_filings))
        selection = select_pack(filings, request.days_back, as_of)

        if not selection:
            raise NoEligibleFilingsError(f"No filings found for pack selection ({company.ticker}).")

        logger.info(
            "Selected %d of %d filings for %s as of %s",
            len(selection), len(filings), company.ticker, as_of,
        )
        return PackPlan(
            request=request,
            company=company,
            as_of=as_of,
            filings=filings,
            selection=selection,
            candidates=audit_candidates(filings, selection, as_of),
        )

    def stream(self, plan: PackPlan) -> Iterator[bytes]:
        """Yield the archive bytes, fetching filings and exhibits sequentially."""
        zip_stream = ZipStream()
        report = PackReport()
        triage = ExhibitTriage(plan.request.budget)
        cik = plan.company.cik

        yield zip_stream.add("MANIFEST.txt", render_manifest(plan))
        yield zip_stream.add("AI_PROMPT.md", render_checklist(plan.as_of))

        for selected in plan.selection:
            filing = selected.filing
            stem = filing_stem(filing)

            primary_url = filing_archive_url(cik, filing)
            try:
                content = self.client.download(primary_url)
            except FetchError as e:
                logger.warning("Primary document unavailable for %s: %s", filing.accession_number, e)
                report.missing.append((filing, "primary document", str(e)))
            else:
                name = f"filings/{stem}__{safe_name(filing.primary_document)}"
                yield zip_stream.add(name, content)

            index_url = filing_index_url(cik, filing)
            try:
                index_html = self.client.download(index_url)
            except FetchError as e:
                logger.warning("Index unavailable for %s: %s", filing.accession_number, e)
                report.missing.append((filing, "index", str(e)))
                continue
            yield zip_stream.add(f"indexes/{stem}-index.html", index_html)

            folder = filing_folder_url(cik, filing)
            docs = []
            for doc in extract_docs(index_html):
                if doc.filename == filing.primary_document:
                    report.inventory.append(InventoryRow(filing, doc, "skipped", PRIMARY_DOCUMENT, primary_url))
                else:
                    docs.append(doc)

            decisions = triage.run(
                docs,
                fetch=lambda d: self.client.download(f"{folder}/{d.filename}"),
                skip_reason=None if plan.request.include_exhibits else EXHIBITS_DISABLED,
            )
            for decision in decisions:
                url = f"{folder}/{decision.doc.filename}"
                if decision.downloaded:
                    name = f"exhibits/{stem}/{safe_name(decision.doc.doc_type)}__{safe_name(decision.doc.filename)}"
                    report.exhibits_downloaded += 1
                    report.exhibit_bytes += decision.size_bytes or 0
                    yield zip_stream.add(name, decision.content or b"")
                report.inventory.append(
                    InventoryRow(
                        filing,
                        decision.doc,
                        "downloaded" if decision.downloaded else "skipped",
                        decision.reason,
                        url,
                    )
                )

        yield zip_stream.add("FILINGS_AUDIT.csv", render_filings_audit(plan.candidates))
        yield zip_stream.add("DOCS_INVENTORY.csv", render_docs_inventory(report.inventory))
        yield zip_stream.add("EXHIBITS_REPORT.txt", render_exhibits_report(plan, report))
        yield zip_stream.add("MISSING_INDEXES.txt", render_missing_report(report))
        yield zip_stream.close()

        logger.info(
            "Pack for %s complete: %d filings, %d exhibits (%d bytes), %d missing documents",
            plan.company.ticker, len(plan.selection), report.exhibits_downloaded,
            report.exhibit_bytes, len(report.missing),
        )


def render_manifest(plan: PackPlan) -> str:
    request = plan.request
    budget = request.budget
    lines = [
        f"Ticker: {plan.company.ticker}",
        f"Company: {plan.company.name}",
        f"CIK: {plan.company.cik}",
        f"As-of date: {plan.as_of.isoformat()}{'' if request.as_of else ' (today)'}",
        f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')}",
        f"DaysBack (8-K & Form 4): {request.days_back}",
        f"Filing history: {'all (recent + archived pages)' if request.all_filings else 'recent only'}",
        f"Exhibits: {'on' if request.include_exhibits else 'off'}",
        f"Deep pull: {'on (caps disabled)' if budget.deep else 'off'}",
        f"Max exhibits per filing: {'unlimited' if budget.deep else budget.max_per_filing}",
        f"Max total exhibit size: {'unlimited' if budget.deep else f'{request.max_mb} MB'}",
        "",
        f"Filings retrieved: {len(plan.filings)}",
        f"Filings selected: {len(plan.selection)}",
        "",
        "Included filings:",
    ]
    lines.extend(
        f"{s.filing.filing_date} | {s.filing.form_type} | {s.filing.accession_number} | "
        f"{s.filing.primary_document} | {s.reason}"
        for s in plan.selection
    )
    lines.append("")
    return "\n".join(lines)


def _csv_text(columns: list[str], rows: list[list[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    writer.writerows(rows)
    return buffer.getvalue()


def render_filings_audit(candidates: list[CandidateAudit]) -> str:
    rows = [
        [
            str(c.filing.filing_date),
            c.filing.form_type,
            c.filing.accession_number,
            c.filing.primary_document,
            "yes" if c.selected else "no",
            c.reason,
        ]
        for c in candidates
    ]
    return _csv_text(FILINGS_AUDIT_COLUMNS, rows)


def render_docs_inventory(inventory: list[InventoryRow]) -> str:
    rows = [
        [
            str(row.filing.filing_date),
            row.filing.form_type,
            row.filing.accession_number,
            row.doc.seq,
            row.doc.doc_type,
            row.doc.description,
            row.doc.filename,
            row.doc.size_text,
            row.status,
            row.reason,
            row.url,
        ]
        for row in inventory
    ]
    return _csv_text(DOCS_INVENTORY_COLUMNS, rows)


def render_exhibits_report(plan: PackPlan, report: PackReport) -> str:
    skipped = [row for row in report.inventory if row.status == "skipped" and row.reason != PRIMARY_DOCUMENT]
    lines = [
        f"Exhibits report for {plan.company.ticker} as of {plan.as_of.isoformat()}",
        "",
        f"Exhibits downloaded: {report.exhibits_downloaded}",
        f"Exhibit bytes downloaded: {report.exhibit_bytes}",
        f"Exhibits skipped: {len(skipped)}",
        "",
    ]
    if skipped:
        lines.append("Skipped exhibits:")
        lines.extend(
            f"{row.filing.filing_date} | {row.filing.form_type} | {row.filing.accession_number} | "
            f"{row.doc.doc_type} | {row.doc.filename} | {row.doc.size_text or '?'} | "
            f"{row.reason} | {row.url}"
            for row in skipped
        )
    else:
        lines.append("No exhibits were skipped.")
    lines.append("")
    return "\n".join(lines)


def render_missing_report(report: PackReport) -> str:
    if not report.missing:
        return "All filing documents and indexes were retrieved.\n"
    lines = ["Documents that could not be retrieved:", ""]
    lines.extend(
        f"{filing.filing_date} | {filing.form_type} | {filing.accession_number} | {what} | {error}"
        for filing, what, error in report.missing
    )
    lines.append("")
    return "\n".join(lines)
