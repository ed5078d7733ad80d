from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from qm_ingest import __version__ as TOOL_VERSION
from qm_ingest.categories import load_categories_file
from qm_ingest.classify import classify_outcome, normalize_outcome
from qm_ingest.config import IngestSettings, load_settings
from qm_ingest.contracts import build_contract, build_run_summary
from qm_ingest.errors import (
    EXIT_COMMAND_ERROR,
    EXIT_PARSE_FAILED,
    QmIngestError,
)
from qm_ingest.fetcher import fetch_source, is_remote_source
from qm_ingest.reporting import attainment_band, attainment_pct, filter_rows
from qm_ingest.rows import parse_qm_sheet
from qm_ingest.sheets import read_sheet_names, select_sheet

EXIT_SUCCESS = 0

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class QmIngestArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json_dumps(payload), encoding="utf-8")


def configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.WARNING
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def exit_code_for(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, QmIngestError):
        return exc.exit_code
    if isinstance(exc, (ImportError, ValueError)):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def resolve_settings(args: argparse.Namespace) -> IngestSettings:
    return load_settings(getattr(args, "config", None))


def render_rows_text(payload: dict[str, Any]) -> str:
    lines = [
        "qm-ingest parse",
        f"Source: {payload['run_summary']['source']}",
        f"Sheet: {payload['sheet_name']}",
        f"Rows: {len(payload['rows'])}",
    ]
    for row in payload["rows"]:
        target = row["targetSoll"] if row["targetSoll"] is not None else "n/a"
        pct = row["attainmentPct"]
        pct_text = f"{pct:.1f}% ({row['attainmentBand']})" if pct is not None else "n/a"
        lines.append(
            f"- {row['agentName'] or '[no agent]'} / {row['projectName'] or '[no project]'}: "
            f"{row['achievedSum']:g} of {target}, {pct_text}"
        )
    return "\n".join(lines) + "\n"


def build_parser() -> argparse.ArgumentParser:
    parser = QmIngestArgumentParser(prog="qm-ingest", description="Fetch, parse and classify QM call-center data.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("--config", help="JSON settings file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("sheets", "List workbook sheets and show which one would be parsed."),
        ("parse", "Parse the QM sheet into normalized rows."),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("source", help="Local path or http(s) URL of the workbook")
        sub.add_argument("--month", help="Reporting month as YYYY-MM")
        sub.add_argument("--sheet", dest="sheet_name", help="Explicit sheet name")
        sub.add_argument("--cookie", help="Cookie header for gated downloads (default: $QM_INGEST_COOKIE)")
        sub.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
        if name == "parse":
            sub.add_argument("--agent", help="Keep rows whose agent contains this text")
            sub.add_argument("--project", help="Keep rows whose project contains this text")
            sub.add_argument("--output", help="Also write the JSON payload to this path")

    classify = subparsers.add_parser("classify", help="Classify outcome labels against campaign categories.")
    classify.add_argument("labels", nargs="+", help="Outcome labels")
    classify.add_argument("--categories", required=True, help="JSON file with campaign categories")
    classify.add_argument("--campaign", action="append", dest="campaigns", help="Restrict to campaign id (repeatable)")
    classify.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print the installed version.")
    return parser


def run_sheets(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    headers = settings.request_headers({"Cookie": args.cookie} if args.cookie else None)
    path = fetch_source(
        args.source,
        headers,
        max_redirects=settings.max_redirects,
        timeout=settings.timeout,
        max_bytes=settings.max_download_bytes,
    )
    try:
        names = read_sheet_names(path)
    finally:
        if is_remote_source(args.source):
            path.unlink(missing_ok=True)
    selected = select_sheet(names, sheet=args.sheet_name, month=args.month)
    payload = {
        "contract": build_contract("qm_ingest.sheets"),
        "sheet_names": names,
        "selected": selected,
        "run_summary": build_run_summary(
            command="sheets",
            source=str(args.source),
            sheet_name=selected,
            metrics={"sheet_count": len(names)},
        ),
    }
    if args.json:
        print(json_dumps(payload))
    else:
        for name in names:
            marker = "*" if name == selected else " "
            print(f"{marker} {name}")
    return EXIT_SUCCESS


def run_parse(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    sheet_name, rows = parse_qm_sheet(
        args.source,
        month=args.month,
        sheet=args.sheet_name,
        cookie=args.cookie,
        settings=settings,
    )
    total = len(rows)
    rows = filter_rows(rows, agent=args.agent, project=args.project)
    serialized = []
    for row in rows:
        record = row.to_dict()
        pct = attainment_pct(row)
        record["attainmentPct"] = pct
        record["attainmentBand"] = attainment_band(pct)
        serialized.append(record)

    payload = {
        "contract": build_contract("qm_ingest.rows"),
        "schema_version": build_contract("qm_ingest.rows")["version"],
        "tool_version": TOOL_VERSION,
        "sheet_name": sheet_name,
        "rows": serialized,
        "run_summary": build_run_summary(
            command="parse",
            source=str(args.source),
            sheet_name=sheet_name,
            metrics={"rows_parsed": total, "rows_returned": len(serialized)},
        ),
    }
    if args.output:
        write_json(Path(args.output), payload)
        emit_human(f"Rows written: {args.output}", quiet=args.quiet)
    if args.json:
        print(json_dumps(payload))
    else:
        emit_human(render_rows_text(payload).rstrip(), quiet=args.quiet)
    return EXIT_SUCCESS


def run_classify(args: argparse.Namespace) -> int:
    categories = load_categories_file(args.categories)
    if args.campaigns:
        missing = [campaign for campaign in args.campaigns if campaign not in categories]
        if missing:
            raise CliError(f"Unknown campaign(s): {missing}. Available: {sorted(categories)}", EXIT_COMMAND_ERROR)
        categories = {campaign: categories[campaign] for campaign in args.campaigns}

    results = [
        {"label": label, "normalized": normalize_outcome(label), "bucket": classify_outcome(label, categories)}
        for label in args.labels
    ]
    if args.json:
        print(
            json_dumps(
                {
                    "contract": build_contract("qm_ingest.classification"),
                    "campaigns": list(categories),
                    "results": results,
                }
            )
        )
    else:
        for item in results:
            print(f"{item['label']}\t{item['bucket']}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args.verbose, args.quiet)
        if args.command == "sheets":
            return run_sheets(args)
        if args.command == "parse":
            return run_parse(args)
        if args.command == "classify":
            return run_classify(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except (CliError, QmIngestError, ImportError, ValueError) as exc:
        eprint(str(exc))
        return exit_code_for(exc)


if __name__ == "__main__":
    raise SystemExit(main())
