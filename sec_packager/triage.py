"""
Exhibit triage policy.

Classifies each exhibit as junk, high-signal or low-signal, orders the
candidates so the byte budget buys as many useful documents as possible, and
enforces the per-filing count cap and the run-wide byte cap. Every exhibit
yields a decision with a reason, accepted or not.
"""

import logging
import math
import re
from typing import Callable, Iterable, Optional

import httpx

from sec_packager.errors import FetchError
from sec_packager.models import ExhibitBudget, ExhibitDoc, TriageDecision

logger = logging.getLogger(__name__)

JUNK_PREFIXES = ("EX-101",)
JUNK_TYPES = frozenset({"EX-104", "XML", "ZIP", "JSON"})

# exhibit numbers: 3 articles/bylaws, 4 instruments defining rights,
# 5 legal opinions, 10 material contracts, 23 consents, 99 press/investor materials
HIGH_SIGNAL_EXHIBITS = frozenset({3, 4, 5, 10, 23, 99})

REASON_JUNK = "junk (machine-readable data)"
REASON_NOT_HIGH_SIGNAL = "not high-signal"
REASON_PER_FILING_CAP = "per-filing cap"
REASON_TOTAL_SIZE_CAP = "total-size cap"
REASON_TOTAL_SIZE_CAP_ACTUAL = "total-size cap (actual size)"
REASON_DOWNLOAD_FAILED = "download failed"

_EXHIBIT_NUMBER = re.compile(r"^EX-(\d+)")
_SIZE = re.compile(r"^([\d,]*\.?\d+)\s*([KMG]?B?)?$", re.IGNORECASE)
_UNITS = {"": 1, "B": 1, "K": 1024, "KB": 1024, "M": 1024 ** 2, "MB": 1024 ** 2, "G": 1024 ** 3, "GB": 1024 ** 3}

_TIER_ORDER = {"high": 0, "low": 1}


def classify(doc_type: str) -> str:
    """
    Classify an exhibit type code.

    Returns:
        ``"junk"`` for XBRL and other machine-readable data, ``"high"`` for
        financially meaningful exhibit categories, ``"low"`` otherwise
    """
    code = doc_type.strip().upper()
    if code in JUNK_TYPES or code.startswith(JUNK_PREFIXES):
        return "junk"

    match = _EXHIBIT_NUMBER.match(code)
    if match and int(match.group(1)) in HIGH_SIGNAL_EXHIBITS:
        return "high"
    return "low"


def parse_size(size_text: str) -> Optional[int]:
    """
    Parse a size as EDGAR reports it ("123456", "512 KB", "1.5 MB").

    Returns:
        Size in bytes, or None when the text is not a size
    """
    match = _SIZE.match(size_text.strip())
    if not match:
        return None
    number = float(match.group(1).replace(",", ""))
    unit = (match.group(2) or "").upper()
    return int(number * _UNITS[unit])


def _sort_key(doc: ExhibitDoc, tier: str) -> tuple[int, float]:
    size = parse_size(doc.size_text)
    return _TIER_ORDER[tier], math.inf if size is None else size


class ExhibitTriage:
    """
    Applies an :class:`ExhibitBudget` across all filings of one pack build.

    Bytes accepted by :meth:`run` are added to :attr:`total_bytes` and never
    released, so the total-size cap spans every filing in the run. The
    per-filing count cap resets on each call to :meth:`run`.
    """

    def __init__(self, budget: ExhibitBudget) -> None:
        self.budget = budget
        self.total_bytes = 0

    @property
    def max_per_filing(self) -> float:
        return math.inf if self.budget.deep else self.budget.max_per_filing

    @property
    def max_total_bytes(self) -> float:
        return math.inf if self.budget.deep else self.budget.max_total_bytes

    def run(
        self,
        docs: Iterable[ExhibitDoc],
        fetch: Optional[Callable[[ExhibitDoc], bytes]] = None,
        skip_reason: Optional[str] = None,
    ) -> list[TriageDecision]:
        """
        Triage the exhibits of a single filing.

        Args:
            docs: Document rows from the filing index
            fetch: Downloads a document; when omitted the reported size is
                taken as the actual size and nothing is downloaded
            skip_reason: Skip every non-junk exhibit with this reason

        Returns:
            One decision per document: junk first, then candidates in
            download order
        """
        decisions: list[TriageDecision] = []
        candidates: list[tuple[ExhibitDoc, str]] = []

        for doc in docs:
            tier = classify(doc.doc_type)
            if tier == "junk":
                decisions.append(TriageDecision(doc=doc, tier=tier, decision="skip", reason=REASON_JUNK))
            else:
                candidates.append((doc, tier))

        candidates.sort(key=lambda item: _sort_key(*item))

        accepted = 0
        for doc, tier in candidates:
            if skip_reason is not None:
                decisions.append(self._skip(doc, tier, skip_reason))
                continue
            if tier == "low" and not self.budget.deep:
                decisions.append(self._skip(doc, tier, REASON_NOT_HIGH_SIGNAL))
                continue
            if accepted >= self.max_per_filing:
                decisions.append(self._skip(doc, tier, REASON_PER_FILING_CAP))
                continue

            reported = parse_size(doc.size_text)
            if reported is not None and self.total_bytes + reported > self.max_total_bytes:
                decisions.append(self._skip(doc, tier, REASON_TOTAL_SIZE_CAP))
                continue

            content: Optional[bytes] = None
            if fetch is None:
                actual = reported or 0
            else:
                try:
                    content = fetch(doc)
                except (FetchError, httpx.HTTPError) as e:
                    logger.warning("Exhibit %s download failed: %s", doc.filename, e)
                    decisions.append(self._skip(doc, tier, f"{REASON_DOWNLOAD_FAILED}: {e}"))
                    continue
                actual = len(content)

            if self.total_bytes + actual > self.max_total_bytes:
                decisions.append(self._skip(doc, tier, REASON_TOTAL_SIZE_CAP_ACTUAL))
                continue

            self.total_bytes += actual
            accepted += 1
            reason = "high-signal" if tier == "high" else "low-signal (deep pull)"
            decisions.append(
                TriageDecision(
                    doc=doc, tier=tier, decision="download", reason=reason,
                    size_bytes=actual, content=content,
                )
            )

        return decisions

    @staticmethod
    def _skip(doc: ExhibitDoc, tier: str, reason: str) -> TriageDecision:
        return TriageDecision(doc=doc, tier=tier, decision="skip", reason=reason)


def triage(docs: Iterable[ExhibitDoc], budget: ExhibitBudget) -> list[TriageDecision]:
    """Plan the triage of one filing's exhibits using reported sizes only."""
    return ExhibitTriage(budget).run(docs)
