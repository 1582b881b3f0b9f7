"""Point-in-time evaluation checklist bundled into every pack."""

import re
from datetime import date
from typing import Optional

PLACEHOLDER = "{{AS_OF_DATE}}"

CHECKLIST_TEMPLATE = """# SYSTEM PROMPT - DO NOT MODIFY OUTPUT FORMAT

AS-OF DATE: {{AS_OF_DATE}}

All analysis must be strictly limited to information available on or before {{AS_OF_DATE}}.
Do not reference, infer, or rely on any information after this date.

---

# Microcap Checklist - Point-in-Time Evaluation

## Goal

Identify mispriced survivors before forced repricing.

- **Target timeframe:** ~12 months (maximum 18 months)
- **Market cap:** $20M-300M

No industry is excluded a priori. Higher-risk industries (robotics, space,
hardware, biotech) must satisfy **all checklist criteria without exception**.

---

## Checklist Criteria

### 1) Revenue
- Real revenue and/or awarded contracts
- QoQ or YoY growth preferred
- **No pipeline-only credit**

### 2) Survival
- At least 6-9 months cash runway **as of {{AS_OF_DATE}}**
- Bankruptcy risk already priced in (not imminent)

### 3) Dilution
- Already diluted (risk largely known)
- **No death-spiral converts**
- **No active ATM**, or ATM capacity below 15-20% of market cap **as of {{AS_OF_DATE}}**

### 4) Float
- Fewer than 80M shares outstanding
- Low institutional ownership

### 5) Catalyst
- Clear, specific event in the next 1-3 quarters **relative to {{AS_OF_DATE}}**
- Must be verifiable or realistically confirmable

### 6) Chart
- Long base formation, volume expansion
- Reclaiming or challenging the 50 / 200 day moving averages
- **Use only price action available up to {{AS_OF_DATE}}**

### 7) Sentiment
- Ignored, disliked, or misunderstood
- **Not hyped**

### 8) Management
- Credible execution history
- **Open-market insider buys with cash (Form 4)**
- No offsetting insider selling or dilution behavior

---

## Scoring Rules

- **8 PASSED:** Legitimate candidate
- **6-7 PASSED:** 3-5x potential
- **Fewer than 6 PASSED:** Reject

UNKNOWN items are treated as NOT PASSED. If two or more critical items
(Dilution, Survival, Management) are UNKNOWN the company **cannot** be a
legitimate candidate.

---

## Point-in-Time Rule (Critical)

- All evaluations run **as of {{AS_OF_DATE}}**
- Only SEC filings filed **on or before {{AS_OF_DATE}}** and price action
  available **on or before {{AS_OF_DATE}}** may be used
- **No future information leakage is allowed**

---

## Required Inputs (as-of constrained)

### Tier-1 (PASS-eligible, objective)
- 10-K (latest filed on or before {{AS_OF_DATE}})
- 10-Q (latest + previous quarter on or before {{AS_OF_DATE}})
- 8-K (last 6-12 months relative to {{AS_OF_DATE}})
- S-3 / S-3/A (latest active on or before {{AS_OF_DATE}})
- 424B*, EFFECT (if any on or before {{AS_OF_DATE}})
- DEF 14A, S-8 (latest on or before {{AS_OF_DATE}})
- Form 4 (last 6-12 months relative to {{AS_OF_DATE}})

### Tier-2 (context only, never PASS-eligible)
- Earnings call transcripts, investor decks, news, analyst notes

Tier-2 sources may only provide narrative context, suggest catalysts to
verify, flag risks to confirm in filings, or generate retrieval requests.

---

## Evidence Gaps + Retrieval Requests

Mark every checklist item **PASSED**, **NOT PASSED** or **UNKNOWN**. For each
UNKNOWN, state the missing fact, the document type that would confirm it and
the exact target (form + time range + exhibit keywords).

---

## Skipped Items Awareness

If `EXHIBITS_REPORT.txt` is provided, scan it and list the top 1-5 skipped
exhibits likely relevant to financing, ATM / dilution, debt / converts,
warrants, or major contracts that should be downloaded next.

---

## Hard Rules

- No silent assumptions
- If information is not present in Tier-1 sources, it **cannot** be PASSED
- If Tier-1 sources contradict a checklist item (active ATM, insider selling,
  worsening runway), the item is **NOT PASSED** regardless of other strengths
"""

_AS_OF_LINE = re.compile(r"^AS-OF DATE: (\d{4}-\d{2}-\d{2})\s*$", re.MULTILINE)
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def render_checklist(as_of: Optional[date | str] = None) -> str:
    """
    Fill the checklist template with the as-of date.

    Args:
        as_of: Date or ISO date string; today when omitted

    Raises:
        ValueError: If ``as_of`` is a string that is not a ``YYYY-MM-DD`` calendar date
    """
    if as_of is None or as_of == "":
        as_of = date.today()
    elif isinstance(as_of, str):
        if not _ISO_DATE.fullmatch(as_of):
            raise ValueError(f"Expected a YYYY-MM-DD date, got {as_of!r}")
        as_of = date.fromisoformat(as_of)
    return CHECKLIST_TEMPLATE.replace(PLACEHOLDER, as_of.isoformat())


def extract_as_of(text: str) -> Optional[str]:
    """Return the ISO date from a rendered checklist's ``AS-OF DATE:`` line."""
    match = _AS_OF_LINE.search(text)
    return match.group(1) if match else None
