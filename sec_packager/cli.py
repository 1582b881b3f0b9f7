"""Command-line interface for the SEC filing packager."""

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from sec_packager.archive import PackBuilder, archive_filename
from sec_packager.client import SECClient
from sec_packager.config import get_settings
from sec_packager.errors import PackError
from sec_packager.logging_config import setup_logging
from sec_packager.models import PackRequest, SelectedFiling


def format_selection_table(selection: list[SelectedFiling]) -> str:
    """Format selected filings as a simple table."""
    if not selection:
        return "No filings selected."

    lines = []
    lines.append(f"{'Form':<10} {'Date':<12} {'Accession Number':<24} Reason")
    lines.append("-" * 80)

    for selected in selection:
        filing = selected.filing
        lines.append(
            f"{filing.form_type:<10} {str(filing.filing_date):<12} "
            f"{filing.accession_number:<24} {selected.reason}"
        )

    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Bundle a company's key SEC filings and exhibits into a ZIP pack"
    )
    parser.add_argument(
        "ticker",
        help="Stock ticker symbol (e.g., AAPL, MSFT)"
    )
    parser.add_argument(
        "--days-back",
        type=int,
        default=365,
        help="Lookback window in days for 8-K and Form 4 filings (30-730, default: 365)"
    )
    parser.add_argument(
        "--as-of",
        type=str,
        help="Point-in-time reference date (YYYY-MM-DD, default: today)"
    )
    parser.add_argument(
        "--max-exhibits",
        type=int,
        default=25,
        help="Maximum exhibits per filing (1-100, default: 25)"
    )
    parser.add_argument(
        "--max-mb",
        type=int,
        default=75,
        help="Maximum total exhibit size in MB (5-500, default: 75)"
    )
    parser.add_argument(
        "--no-exhibits",
        action="store_true",
        help="Do not download exhibits (indexes are still included)"
    )
    parser.add_argument(
        "--deep",
        action="store_true",
        help="Deep pull: disable exhibit caps and include low-signal exhibits"
    )
    parser.add_argument(
        "--recent-only",
        action="store_true",
        help="Only use the recent filings window instead of the full history"
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output ZIP path (default: <TICKER>_sec_pack.zip)"
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="Print the selected filings without building an archive"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="With --list, output the selection as JSON"
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """
    Main CLI entry point.

    Usage: sec-packager AAPL --as-of 2024-01-01 --output aapl.zip
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings.log_level)

    as_of = None
    if args.as_of:
        try:
            as_of = date.fromisoformat(args.as_of)
        except ValueError:
            print(f"Error: Invalid date format for --as-of: {args.as_of}", file=sys.stderr)
            print("Expected format: YYYY-MM-DD", file=sys.stderr)
            sys.exit(1)

    try:
        request = PackRequest(
            ticker=args.ticker,
            days_back=args.days_back,
            max_exhibits=args.max_exhibits,
            max_mb=args.max_mb,
            include_exhibits=not args.no_exhibits,
            deep=args.deep,
            all_filings=not args.recent_only,
            as_of=as_of,
        )
    except ValidationError as e:
        for error in e.errors():
            field_name = ".".join(str(part) for part in error["loc"])
            print(f"Error: {field_name}: {error['msg']}", file=sys.stderr)
        sys.exit(1)

    try:
        with SECClient(settings) as client:
            builder = PackBuilder(client)
            plan = builder.prepare(request)

            if args.list:
                if args.json:
                    output = {
                        "company": plan.company.model_dump(),
                        "as_of": plan.as_of.isoformat(),
                        "filings": [
                            {
                                "form_type": s.filing.form_type,
                                "filing_date": str(s.filing.filing_date),
                                "accession_number": s.filing.accession_number,
                                "primary_document": s.filing.primary_document,
                                "reason": s.reason,
                            }
                            for s in plan.selection
                        ],
                    }
                    print(json.dumps(output, indent=2))
                else:
                    print(f"\nCompany: {plan.company.name} ({plan.company.ticker})")
                    print(f"CIK: {plan.company.cik}")
                    print(f"As of: {plan.as_of}\n")
                    print(format_selection_table(plan.selection))
                return

            output_path = Path(args.output or archive_filename(plan.company.ticker))
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, "wb") as f:
                for chunk in builder.stream(plan):
                    f.write(chunk)
    except (PackError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Wrote {output_path}")


if __name__ == "__main__":
    main()
