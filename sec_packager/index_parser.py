"""Extract the document list from an EDGAR filing index page."""

import logging
import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup
from bs4.element import Tag

from sec_packager.models import ExhibitDoc

logger = logging.getLogger(__name__)

DOCUMENT_TABLE_CAPTION = "Document Format Files"
TYPE_HEADER = "TYPE"


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", text.replace("\xa0", " ")).strip()


def normalize_type(text: str) -> str:
    """Collapse whitespace and upper-case an exhibit type cell."""
    return _clean(text).upper()


def _find_document_table(soup: BeautifulSoup) -> Optional[Tag]:
    for table in soup.find_all("table"):
        summary = _clean(table.get("summary", ""))
        caption = table.find("caption")
        if summary == DOCUMENT_TABLE_CAPTION:
            return table
        if caption is not None and _clean(caption.get_text()) == DOCUMENT_TABLE_CAPTION:
            return table

    for table in soup.find_all("table"):
        if DOCUMENT_TABLE_CAPTION.lower() in table.get_text(" ").lower():
            return table

    return None


def _filename_from_href(href: str) -> str:
    parsed = urlparse(href)
    # inline XBRL viewer links look like /ix?doc=/Archives/edgar/data/.../doc.htm
    if parsed.path.rstrip("/").endswith("/ix") or parsed.path == "ix":
        target = parse_qs(parsed.query).get("doc", [""])[0]
        parsed = urlparse(target)
    return parsed.path.rsplit("/", 1)[-1]


def _resolve_filename(cell: Tag) -> str:
    link = cell.find("a", href=True)
    if link is not None:
        name = _filename_from_href(link["href"])
        if name:
            return name
        text = _clean(link.get_text())
        if text:
            return text.split(" ")[0]

    text = _clean(cell.get_text())
    first = text.split(" ")[0] if text else ""
    return first if "." in first else ""


def _row_to_doc(row: Tag) -> Optional[ExhibitDoc]:
    cells = row.find_all("td")
    if len(cells) < 4:
        return None

    filename = _resolve_filename(cells[2])
    if not filename:
        return None

    doc_type = normalize_type(cells[3].get_text())
    if not doc_type or doc_type == TYPE_HEADER:
        return None

    return ExhibitDoc(
        seq=_clean(cells[0].get_text()),
        description=_clean(cells[1].get_text()),
        doc_type=doc_type,
        filename=filename,
        size_text=_clean(cells[4].get_text()) if len(cells) > 4 else "",
    )


def extract_docs(index_html: str | bytes) -> list[ExhibitDoc]:
    """
    Parse the document rows of a filing index page.

    Looks for the table captioned "Document Format Files", then for any
    table mentioning that phrase, and finally scans every row of the page.
    Rows without a filename, with fewer than four columns, or whose type
    cell is empty or the header text are skipped.

    Args:
        index_html: Raw ``-index.html`` content

    Returns:
        Documents in page order (empty if nothing parseable was found)
    """
    soup = BeautifulSoup(index_html, "html.parser")
    table = _find_document_table(soup)
    if table is None:
        logger.debug("No document table found; scanning every row")
        rows = soup.find_all("tr")
    else:
        rows = table.find_all("tr")

    docs = []
    for row in rows:
        doc = _row_to_doc(row)
        if doc is not None:
            docs.append(doc)

    if not docs:
        logger.warning("Index page yielded no document rows")
    return docs
