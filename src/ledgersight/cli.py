# SMB LedgerSight - Financial statements engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for SMB LedgerSight.

The CLI is intentionally thin: it reads ledger records from CSV, resolves
the company settings and the reporting period, then delegates everything
to ``integration.generate_statements`` and renders the result.

High-level pipeline
-------------------

1) Load the TOML configuration (``ledgersight_config.toml`` by default,
   ``--config PATH`` otherwise). Without any configuration file, default
   settings are used for every company found in the records.

2) Read ledger records from ``--records CSV``.

3) Build the requested statements (``--statement``) for the requested
   period (``--period`` / ``--from-date`` / ``--to-date``), optionally
   with a comparison period (``--compare``).

4) Render statements, validation findings, the summary and ratios as
   console tables and/or timestamped CSV files (``--display-mode``).

Subcommands
-----------

``templates list`` and ``templates apply ID --var name=value ...`` work
with journal entry templates (packaged defaults or ``--templates PATH``).

Errors
------
Invalid periods, unknown companies, malformed CSV or configuration files
print a message on stderr and exit with status 2.
"""

import argparse
import sys
from collections.abc import Sequence
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__
from .config import DEFAULT_CONFIG_FILE, AppConfig, CompanySettings, load_app_config
from .errors import LedgerSightError
from .integration import (
    ALL_STATEMENTS,
    IntegratedStatements,
    StatementOptions,
    generate_per_currency,
    generate_statements,
)
from .io import read_ledger_records
from .logging_setup import configure_logging, get_logger
from .money import format_amount, to_decimal
from .periods import COMPARISON_MODES, PeriodKind, PeriodRequest
from .templates import apply_template, load_templates
from .validation import StatementKind
from .views import (
    VIEW_CHOICES,
    apply_view_level_filter,
    findings_to_dataframe,
    ratios_to_dataframe,
    statement_to_dataframe,
)

logger = get_logger(__name__)

_STATEMENT_TITLES = {
    StatementKind.BALANCE_SHEET: "Balance sheet",
    StatementKind.PROFIT_LOSS: "Profit & Loss",
    StatementKind.CASH_FLOW: "Cash flow statement",
}


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="ledgersight",
        description=(
            "SMB LedgerSight - Financial statements engine for SMBs. "
            "Builds balance sheet, P&L and cash flow statements from ledger "
            "records, validates them against IFRS presentation rules and "
            "reconciles cash."
        ),
    )

    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of ledgersight and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the TOML configuration file. If omitted, "
            f"'{DEFAULT_CONFIG_FILE}' in the current directory is used when present."
        ),
    )
    ap.add_argument(
        "--log-level",
        dest="log_level",
        help="Logging level (DEBUG, INFO, WARNING...). Overrides [logging].level.",
    )
    ap.add_argument(
        "--company",
        help="Company id to report on (required when several are configured).",
    )
    ap.add_argument(
        "--records",
        dest="records_path",
        metavar="CSV_PATH",
        help="CSV file of ledger records (see ledgersight.io for the columns).",
    )

    # Period selection
    ap.add_argument(
        "--period",
        choices=[k.value for k in PeriodKind],
        help="Reporting period kind (default: thisMonth, or custom with --from-date).",
    )
    ap.add_argument("--year", type=int, help="Year for fiscalYear and quarter periods.")
    ap.add_argument("--quarter", type=int, help="Quarter (1-4) for quarter periods.")
    ap.add_argument("--from-date", dest="from_date", help="Custom period start (YYYY-MM-DD).")
    ap.add_argument("--to-date", dest="to_date", help="Custom period end (YYYY-MM-DD).")
    ap.add_argument(
        "--compare",
        choices=list(COMPARISON_MODES),
        help="Add a comparison period and variances.",
    )

    # What to build
    ap.add_argument(
        "--statement",
        choices=[k.value for k in StatementKind] + ["all"],
        default="all",
        help="Statement to build (default: all three).",
    )
    ap.add_argument(
        "--method",
        choices=["indirect", "direct"],
        default="indirect",
        help="Cash flow method for operating activities.",
    )
    ap.add_argument("--opening-cash", dest="opening_cash", help="Opening cash balance.")
    ap.add_argument(
        "--closing-cash",
        dest="closing_cash",
        help=(
            "Closing cash balance from the ledger (enables reconciliation). "
            "With --per-currency, it applies to the presentation currency only."
        ),
    )
    ap.add_argument("--currency", help="Presentation currency (default: functional currency).")
    ap.add_argument(
        "--per-currency",
        action="store_true",
        help="Build one statement set per currency instead of excluding other currencies.",
    )
    ap.add_argument(
        "--group-by",
        dest="group_by",
        choices=["category", "subcategory"],
        default="category",
        help="P&L breakdown.",
    )
    ap.add_argument(
        "--profit-in-equity",
        action="store_true",
        help="Show the period's net profit as an equity line on the balance sheet.",
    )

    # Display options
    ap.add_argument(
        "--view",
        choices=list(VIEW_CHOICES),
        default="detailed",
        help="simplified: section totals; regular: sections and lines; detailed: every line.",
    )
    ap.add_argument(
        "--ratios-level",
        dest="ratios_level",
        choices=["basic", "advanced", "full"],
        help="Override the default ratios level from the configuration.",
    )
    ap.add_argument(
        "--display-mode",
        dest="display_mode",
        choices=["table", "csv", "both"],
        help=(
            "Override display.mode: 'table' prints to stdout, 'csv' writes CSV "
            "files only, 'both' does both."
        ),
    )
    ap.add_argument(
        "--output",
        dest="output_dir",
        help="Output directory for CSV files (default: data/output).",
    )

    # Subcommands: templates
    subparsers = ap.add_subparsers(dest="command", metavar="command")
    templates_parser = subparsers.add_parser("templates", help="Journal entry templates.")
    templates_parser.add_argument(
        "--templates",
        dest="templates_path",
        help="TOML file of journal templates (packaged defaults otherwise).",
    )
    templates_sub = templates_parser.add_subparsers(dest="templates_command", metavar="action")
    templates_sub.add_parser("list", help="List available templates and their variables.")
    apply_parser = templates_sub.add_parser("apply", help="Build a journal entry from a template.")
    apply_parser.add_argument("template_id", help="Template id.")
    apply_parser.add_argument(
        "--var",
        dest="variables",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Template variable (repeatable).",
    )
    apply_parser.add_argument("--date", dest="entry_date", help="Entry date (YYYY-MM-DD).")
    apply_parser.add_argument("--reference", help="Entry reference.")

    return ap


def _parse_optional_date(value: Optional[str]) -> Optional[date]:
    """
    Parse an optional CLI date argument (YYYY-MM-DD).

    Raises
    ------
    ValueError
        If the date format is invalid.
    """
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid date format: {value!r}. Expected YYYY-MM-DD.") from exc


def _period_request(args: argparse.Namespace) -> PeriodRequest:
    start = _parse_optional_date(args.from_date)
    end = _parse_optional_date(args.to_date)
    kind = args.period
    if kind is None:
        kind = PeriodKind.CUSTOM.value if (start or end) else PeriodKind.THIS_MONTH.value
    return PeriodRequest(
        kind=kind,
        start=start,
        end=end,
        year=args.year,
        quarter=args.quarter,
        compare=args.compare,
    )


def _load_config(args: argparse.Namespace) -> Optional[AppConfig]:
    if args.config_path:
        return load_app_config(args.config_path)
    if Path(DEFAULT_CONFIG_FILE).is_file():
        return load_app_config()
    return None


def _company_settings(
    config: Optional[AppConfig],
    company_id: Optional[str],
    records: Sequence,
) -> CompanySettings:
    if config is not None:
        return config.company(company_id)
    if company_id:
        return CompanySettings(company_id=company_id)
    ids = sorted({r.company_id for r in records})
    if len(ids) != 1:
        raise ValueError(
            "Records belong to several companies; use --company or a configuration file."
        )
    return CompanySettings(company_id=ids[0])


def _print_table(title: str, df: pd.DataFrame) -> None:
    print()
    print(f"=== {title} ===")
    if df.empty:
        print("(nothing to show)")
    else:
        print(df.to_string(index=False))


def _render(
    result: IntegratedStatements,
    *,
    view: str,
    display_mode: str,
    output_dir: Path,
    ratio_decimals: int,
) -> None:
    period = result.period
    start = period.start.date().isoformat() if period.start is not None else "beginning"
    print(
        f"Company: {result.company_id} | Applied period: {period.label} "
        f"({start} → {period.end.date().isoformat()}) | Currency: {result.currency}"
    )
    if result.prior_period is not None:
        print(f"Comparison period: {result.prior_period.label}")

    tables: list[tuple[str, str, pd.DataFrame]] = []
    for statement_result in result.results():
        title = f"{_STATEMENT_TITLES[statement_result.kind]} ({result.currency})"
        df = apply_view_level_filter(statement_to_dataframe(statement_result.statement), view)
        tables.append((title, statement_result.kind.value.replace("-", "_"), df))

    findings = findings_to_dataframe(result.findings)
    tables.append(("Validation findings", "findings", findings))
    if result.ratios:
        tables.append(("Ratios & KPIs", "ratios", ratios_to_dataframe(result.ratios, ratio_decimals)))

    if display_mode in {"table", "both"}:
        for title, _, df in tables:
            _print_table(title, df)

        cf = result.cash_flow
        if cf is not None:
            rec = cf.statement.reconciliation
            state = "reconciled" if rec.is_reconciled else "NOT reconciled"
            print()
            print(
                f"Cash: opening {rec.opening_cash.formatted} + net {rec.net_cash_flow.formatted} "
                f"vs closing {rec.closing_cash.formatted} -> {state} "
                f"(difference {rec.formatted_difference})"
            )

        if result.summary.highlights:
            print()
            print("=== Highlights ===")
            for h in result.summary.highlights:
                print(f"- [{h.status}] {h.metric}: {h.message}")
        print()
        print(f"Status: {result.status}")

    if display_mode in {"csv", "both"}:
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
        for _, stem, df in tables:
            path = output_dir / f"{stem}_{result.company_id}_{result.currency}_{timestamp}.csv"
            df.to_csv(path, index=False)
            print(f"Wrote {path} ({len(df)} rows)")


def _handle_templates(args: argparse.Namespace) -> int:
    path = Path(args.templates_path) if args.templates_path else None
    templates = load_templates(path)

    if args.templates_command == "apply":
        template = templates.get(args.template_id)
        if template is None:
            raise ValueError(f"Unknown template: {args.template_id!r}")
        values: dict[str, str] = {}
        for item in args.variables:
            name, sep, value = item.partition("=")
            if not sep or not name.strip():
                raise ValueError(f"Invalid --var {item!r}, expected NAME=VALUE.")
            values[name.strip()] = value.strip()

        draft = apply_template(
            template,
            values,
            entry_date=_parse_optional_date(args.entry_date),
            reference=args.reference,
        )
        df = pd.DataFrame(
            [
                {
                    "account_code": line.account_code,
                    "account_name": line.account_name,
                    "description": line.description,
                    "debit": float(line.debit),
                    "credit": float(line.credit),
                }
                for line in draft.lines
            ]
        )
        _print_table(draft.description or template.name, df)
        print()
        print(
            f"Total debits: {draft.total_debits:.2f} | Total credits: {draft.total_credits:.2f} | "
            f"{'balanced' if draft.is_balanced else 'NOT balanced'}"
        )
        return 0

    rows = [
        {
            "id": t.id,
            "name": t.name,
            "category": t.category,
            "variables": ", ".join(t.variables),
        }
        for t in templates.values()
        if t.is_active
    ]
    _print_table("Journal templates", pd.DataFrame(rows))
    return 0


def _run(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    config = _load_config(args)
    configure_logging(args.log_level or (config.log_level if config is not None else None))

    if args.command == "templates":
        return _handle_templates(args)

    if not args.records_path:
        parser.error("--records is required to build statements.")
    records_path = Path(args.records_path)
    if not records_path.is_file():
        parser.error(f"Records file not found: {records_path}")

    records = read_ledger_records(records_path)
    settings = _company_settings(config, args.company, records)
    records = [r for r in records if r.company_id == settings.company_id]
    print(f"Records read for {settings.company_id}: {len(records)}")
    if not records:
        print("Warning: no ledger records were found for this company.")

    statements = (
        ALL_STATEMENTS if args.statement == "all" else (StatementKind(args.statement),)
    )
    ratios_level = None
    if config is None or config.ratios_enabled:
        ratios_level = args.ratios_level or (config.default_ratios_level if config else "basic")

    options = StatementOptions(
        statements=statements,
        method=args.method,
        group_by=args.group_by,
        currency=args.currency,
        opening_cash=to_decimal(args.opening_cash) if args.opening_cash else None,
        closing_cash=to_decimal(args.closing_cash) if args.closing_cash else None,
        profit_in_equity=args.profit_in_equity,
        ratios_level=ratios_level,
        ratios_rules_file=config.ratios_rules_file if config is not None else None,
    )
    request = _period_request(args)
    max_days = config.max_custom_days if config is not None else 731

    if args.per_currency:
        results = list(
            generate_per_currency(
                records, request, settings, options=options, max_days=max_days
            ).values()
        )
    else:
        rates = config.rates if config is not None else None
        results = [
            generate_statements(
                records, request, settings, options=options, rates=rates, max_days=max_days
            )
        ]

    display_mode = args.display_mode or (config.display_mode if config is not None else "table")
    output_dir = Path(args.output_dir) if args.output_dir else Path("data/output")
    ratio_decimals = config.ratio_decimals if config is not None else 2
    for result in results:
        _render(
            result,
            view=args.view,
            display_mode=display_mode,
            output_dir=output_dir,
            ratio_decimals=ratio_decimals,
        )
        net = result.summary.key_metrics.get("net_profit")
        if net is not None:
            logger.info("Net profit %s", format_amount(net, result.currency))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the SMB LedgerSight CLI.

    Returns the process exit status: 0 on success, 2 when the request,
    the configuration or the input files are invalid.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"ledgersight version {__version__}")
        return 0

    try:
        return _run(args, parser)
    except (LedgerSightError, ValueError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
