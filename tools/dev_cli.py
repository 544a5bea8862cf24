from __future__ import annotations

import argparse
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from portfolio_import.config.paths import data_dir, default_db_path
from portfolio_import.config.settings import get_settings
from portfolio_import.errors import ImportFormatError
from portfolio_import.utils.logging import configure_logging


def _print_diff(diffs) -> None:
    from portfolio_import.analytics.reconciliation import diff_table, summarize_diff

    table = diff_table(diffs)
    if table.empty:
        print("No differences.")
    else:
        print(table.to_string(index=False))
    summary = summarize_diff(diffs)
    print(
        f"new={summary.new_count} changed={summary.changed_count} "
        f"removed={summary.removed_count} unchanged={summary.unchanged_count} "
        f"estimated_value_change={summary.estimated_value_change:,.2f}"
    )


def _load_incoming(args: argparse.Namespace):
    from portfolio_import.ingest.holdings_csv import load_holdings_csv_preview

    preview = load_holdings_csv_preview(Path(args.path))
    print(f"Detected format: {preview.format} ({len(preview.rows)} holdings)")
    return preview.rows


def _cmd_init_db(args: argparse.Namespace) -> int:
    from portfolio_import.db.migrate import migrate

    migrate(args.database_url)
    print("Initialized database schema.")
    return 0


def _cmd_paths(_: argparse.Namespace) -> int:
    print(f"DATA_DIR={data_dir()}")
    print(f"DEFAULT_DB={default_db_path()}")
    print(f"DATABASE_URL={get_settings().database_url}")
    return 0


def _cmd_preview(args: argparse.Namespace) -> int:
    from portfolio_import.ingest.holdings_csv import load_holdings_csv_preview

    preview = load_holdings_csv_preview(Path(args.path), max_rows=args.max_rows)
    print(f"Detected format: {preview.format} ({len(preview.rows)} holdings)")
    if not preview.sample.empty:
        print(preview.sample.to_string(index=False))
    return 0


def _cmd_diff(args: argparse.Namespace) -> int:
    from portfolio_import.analytics.reconciliation import apply_accepted_diffs, diff_holdings
    from portfolio_import.db.migrate import migrate
    from portfolio_import.db.repository import SqlHoldingStore, session_scope

    incoming = _load_incoming(args)
    settings = get_settings()
    engine = migrate(args.database_url)
    with session_scope(engine) as session:
        store = SqlHoldingStore(session)
        diffs = diff_holdings(
            store.list_holdings(),
            incoming,
            qty_tolerance=settings.qty_tolerance,
            price_tolerance=settings.price_tolerance,
        )
        if args.keep_missing:
            for diff in diffs:
                if diff.type == "removed":
                    diff.accepted = False
        _print_diff(diffs)
        if args.apply:
            result = apply_accepted_diffs(diffs, store)
            print(
                f"Applied: imported={result.imported} updated={result.updated} "
                f"removed={result.removed}"
            )
    return 0


def _cmd_smart_import(args: argparse.Namespace) -> int:
    from portfolio_import.analytics.reconciliation import diff_from_parse_result
    from portfolio_import.db.migrate import migrate
    from portfolio_import.db.repository import SqlHoldingStore, session_scope
    from portfolio_import.ingest.document_import import parse_document

    settings = get_settings()
    if not settings.enable_smart_import:
        print("Smart import is disabled. Set ENABLE_SMART_IMPORT=1 to enable it.")
        return 1

    path = Path(args.path)
    result = parse_document(path.read_bytes(), filename=path.name)
    print(
        f"Provider: {result.provider or 'unknown'} | "
        f"statement date: {result.statement_date or 'unknown'}"
    )
    engine = migrate(args.database_url)
    with session_scope(engine) as session:
        diffs = diff_from_parse_result(
            SqlHoldingStore(session).list_holdings(),
            result,
            qty_tolerance=settings.qty_tolerance,
            price_tolerance=settings.price_tolerance,
        )
        _print_diff(diffs)
    return 0


def _cmd_import_trades(args: argparse.Namespace) -> int:
    from portfolio_import.db.migrate import migrate
    from portfolio_import.db.repository import SqlHoldingStore, session_scope
    from portfolio_import.ingest.trades_csv import parse_trades_csv

    rows = parse_trades_csv(Path(args.path).read_text(encoding="utf-8-sig"))
    engine = migrate(args.database_url)
    with session_scope(engine) as session:
        trades, skipped = SqlHoldingStore(session).import_trades(rows)

    print(f"Imported {len(trades)} trades.")
    if skipped:
        print(f"Skipped {len(skipped)} trades with unknown tickers: {', '.join(skipped)}")
    return 0


def _cmd_export(args: argparse.Namespace) -> int:
    from portfolio_import.db.migrate import migrate
    from portfolio_import.db.repository import SqlHoldingStore, session_scope
    from portfolio_import.ingest.holdings_csv import holdings_to_csv
    from portfolio_import.ingest.trades_csv import trades_to_csv

    engine = migrate(args.database_url)
    with session_scope(engine) as session:
        store = SqlHoldingStore(session)
        holdings = store.list_holdings()
        if args.trades:
            text = trades_to_csv(store.list_trades(), holdings)
        else:
            text = holdings_to_csv(holdings)

    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
        print(f"Wrote {args.output}")
    else:
        print(text)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Portfolio import developer CLI")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL.")
    parser.add_argument("--log-level", default=None, help="Override the log level.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sp_init_db = subparsers.add_parser("init-db", help="Create local database schema")
    sp_init_db.set_defaults(func=_cmd_init_db)

    sp_paths = subparsers.add_parser("paths", help="Print configured project paths")
    sp_paths.set_defaults(func=_cmd_paths)

    sp_preview = subparsers.add_parser("preview", help="Detect and parse a holdings CSV")
    sp_preview.add_argument("path")
    sp_preview.add_argument("--max-rows", type=int, default=200)
    sp_preview.set_defaults(func=_cmd_preview)

    sp_diff = subparsers.add_parser(
        "diff", help="Compare a holdings CSV against the stored portfolio"
    )
    sp_diff.add_argument("path")
    sp_diff.add_argument(
        "--apply",
        action="store_true",
        help="Apply accepted changes to the stored portfolio.",
    )
    sp_diff.add_argument(
        "--keep-missing",
        action="store_true",
        help="Do not remove holdings that are missing from the statement.",
    )
    sp_diff.set_defaults(func=_cmd_diff)

    sp_smart = subparsers.add_parser(
        "smart-import", help="Extract holdings from a document and diff them"
    )
    sp_smart.add_argument("path")
    sp_smart.set_defaults(func=_cmd_smart_import)

    sp_trades = subparsers.add_parser("import-trades", help="Import a trades CSV into stored holdings")
    sp_trades.add_argument("path")
    sp_trades.set_defaults(func=_cmd_import_trades)

    sp_export = subparsers.add_parser("export", help="Export holdings or trades as CSV")
    sp_export.add_argument("--output", default="")
    sp_export.add_argument("--trades", action="store_true", help="Export the trade ledger.")
    sp_export.set_defaults(func=_cmd_export)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    try:
        return args.func(args)
    except ImportFormatError as exc:
        print(f"Import failed: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
