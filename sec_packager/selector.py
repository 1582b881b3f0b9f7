"""
Filing selection policy.

Decides which filings belong in a pack as of a point in time. Each rule is a
small pure function over the eligible filings (those filed on or before the
as-of date) returning ``(filing, reason)`` pairs. Rule outputs are
concatenated in order and deduplicated by accession number, first rule wins.
"""

from datetime import date, timedelta
from typing import Callable, Iterable, Optional

from sec_packager.models import CandidateAudit, Filing, SelectedFiling

ANNUAL_REPORT = "10-K"
QUARTERLY_REPORT = "10-Q"
CURRENT_REPORT = "8-K"
SHELF_REGISTRATION = frozenset({"S-3", "S-3/A", "S-3ASR", "S-1", "S-1/A"})
PROSPECTUS_PREFIX = "424B"
EFFECTIVENESS_NOTICE = "EFFECT"
PROXY_STATEMENT = frozenset({"DEF 14A", "DEFA14A", "DEFM14A", "DEF 14C"})
EQUITY_COMP_REGISTRATION = "S-8"
INSIDER_TRANSACTION = "4"

Pick = tuple[Filing, str]
Rule = Callable[[list[Filing]], list[Pick]]


def newest(predicate: Callable[[Filing], bool], reason: str) -> Rule:
    """Rule picking the newest filing matching ``predicate``."""

    def rule(filings: list[Filing]) -> list[Pick]:
        for filing in filings:
            if predicate(filing):
                return [(filing, reason)]
        return []

    return rule


def newest_n(predicate: Callable[[Filing], bool], count: int, label: str) -> Rule:
    """Rule picking up to ``count`` newest filings matching ``predicate``."""

    def rule(filings: list[Filing]) -> list[Pick]:
        matches = [f for f in filings if predicate(f)][:count]
        return [(f, f"{label} ({i} of {count})") for i, f in enumerate(matches, start=1)]

    return rule


def within_window(predicate: Callable[[Filing], bool], start: date, end: date, reason: str) -> Rule:
    """Rule picking every filing matching ``predicate`` filed in ``[start, end]``."""

    def rule(filings: list[Filing]) -> list[Pick]:
        return [(f, reason) for f in filings if predicate(f) and start <= f.filing_date <= end]

    return rule


def form_is(form_type: str) -> Callable[[Filing], bool]:
    return lambda f: f.form_type == form_type


def form_in(form_types: Iterable[str]) -> Callable[[Filing], bool]:
    allowed = frozenset(form_types)
    return lambda f: f.form_type in allowed


def form_startswith(prefix: str) -> Callable[[Filing], bool]:
    return lambda f: f.form_type.startswith(prefix)


def build_rules(window_days: int, as_of: date) -> list[Rule]:
    """The ordered rule set for a given lookback window and as-of date."""
    window_start = as_of - timedelta(days=window_days)

    return [
        newest(form_is(ANNUAL_REPORT), f"latest {ANNUAL_REPORT}"),
        newest_n(form_is(QUARTERLY_REPORT), 2, f"latest {QUARTERLY_REPORT}"),
        within_window(
            form_is(CURRENT_REPORT), window_start, as_of,
            f"{CURRENT_REPORT} within {window_days} days",
        ),
        newest(form_in(SHELF_REGISTRATION), "latest shelf registration (S-3)"),
        newest(form_startswith(PROSPECTUS_PREFIX), "latest prospectus supplement (424B*)"),
        newest(form_is(EFFECTIVENESS_NOTICE), "latest effectiveness notice (EFFECT)"),
        newest(form_in(PROXY_STATEMENT), "latest proxy statement"),
        newest(form_is(EQUITY_COMP_REGISTRATION), "latest equity compensation registration (S-8)"),
        within_window(
            form_is(INSIDER_TRANSACTION), window_start, as_of,
            f"Form {INSIDER_TRANSACTION} within {window_days} days",
        ),
    ]


def eligible_filings(filings: Iterable[Filing], as_of: date) -> list[Filing]:
    """Filings filed on or before ``as_of``, newest first (stable on ties)."""
    eligible = [f for f in filings if f.filing_date <= as_of]
    return sorted(eligible, key=lambda f: f.filing_date, reverse=True)


def select_pack(
    filings: Iterable[Filing],
    window_days: int,
    as_of: Optional[date] = None,
) -> list[SelectedFiling]:
    """
    Choose the filings that belong in a pack.

    Args:
        filings: Full filing history for one company
        window_days: Lookback window for 8-K and Form 4 filings
        as_of: Point-in-time reference date (defaults to today)

    Returns:
        Selected filings in rule order, each with the reason it was chosen
    """
    as_of = as_of or date.today()
    eligible = eligible_filings(filings, as_of)

    selected: list[SelectedFiling] = []
    seen: set[str] = set()
    for rule in build_rules(window_days, as_of):
        for filing, reason in rule(eligible):
            if filing.accession_number in seen:
                continue
            seen.add(filing.accession_number)
            selected.append(SelectedFiling(filing=filing, reason=reason))

    return selected


def audit_candidates(
    filings: Iterable[Filing],
    selection: list[SelectedFiling],
    as_of: Optional[date] = None,
) -> list[CandidateAudit]:
    """
    Explain the selection outcome for every filing in the history.

    Returns one entry per filing (in input order, duplicates by accession
    number collapsed), carrying the selection reason or why it was left out.
    """
    as_of = as_of or date.today()
    reasons = {s.filing.accession_number: s.reason for s in selection}

    audit = []
    seen: set[str] = set()
    for filing in filings:
        if filing.accession_number in seen:
            continue
        seen.add(filing.accession_number)

        if filing.accession_number in reasons:
            entry = CandidateAudit(filing=filing, selected=True, reason=reasons[filing.accession_number])
        elif filing.filing_date > as_of:
            entry = CandidateAudit(filing=filing, selected=False, reason="filed after as-of date")
        else:
            entry = CandidateAudit(filing=filing, selected=False, reason="not matched by any selection rule")
        audit.append(entry)

    return audit
