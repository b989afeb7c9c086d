#!/usr/bin/env python3
"""
Command-line access to the proficiency overview and remediation plans.

Usage:
  python scripts/proficiency_cli.py init-db
  python scripts/proficiency_cli.py overview --school-year "5º Ano" --region "Regional 1" --unit "Escola A"
  python scripts/proficiency_cli.py remediation --student "Ana Souza" --class-name 5A --unit "Escola A" -o plano.pdf

Requires: DATABASE_URL in .env or environment. TEXT_GENERATION_API_KEY is
optional; without it remediation plans use the deterministic builder.
"""
import argparse
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

try:
    from dotenv import load_dotenv
    load_dotenv(ROOT / ".env")
except ImportError:
    pass


def _print_overview(result):
    from core.scope_resolver import SCOPE_LABELS, SCOPES, SEMESTERS

    for scope in SCOPES:
        print(SCOPE_LABELS[scope])
        for sem in SEMESTERS:
            snap = result.snapshots[(scope, sem)]
            print(
                f"  {sem}ª avaliação: índice {snap.overall_score:5.1f} | "
                f"defasagem {snap.deficient:4d} | intermediário {snap.intermediate:4d} | "
                f"adequado {snap.adequate:4d} | dominante: {snap.dominant_tier}"
            )
        delta = result.deltas.get(scope)
        if delta is not None:
            badges = ", ".join(
                f"{key} {trend.label}" for key, trend in delta.tiers.items() if trend.visible
            )
            print(f"  variação: índice {delta.overall_delta:+.1f}" + (f" ({badges})" if badges else ""))
        print()


def cmd_overview(args) -> int:
    from core.database import fetch_results
    from core.scope_resolver import FilterSelection, compute_overview
    from core.tier_engine import policy_from_value

    selection = FilterSelection(
        component=args.component,
        school_year=args.school_year,
        region=args.region,
        unit=args.unit,
    )
    result = compute_overview(selection, policy_from_value(args.policy), fetch=fetch_results)
    _print_overview(result)
    return 0


def cmd_remediation(args) -> int:
    from core.database import FetchError, fetch_results
    from core.normalizer import clean_filters
    from core.remediation_report import generate_student_report
    from core.text_generator import get_default_generator

    filters = clean_filters({
        "student_name": args.student,
        "class_name": args.class_name,
        "unit": args.unit,
        "component": args.component,
        "school_year": args.school_year,
        "semester": args.semester,
    })
    try:
        rows = fetch_results(filters)
    except FetchError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    generate = None if args.no_generator else get_default_generator()
    outcome = generate_student_report((args.student, args.class_name, args.unit), rows, generate)
    if not outcome.ok:
        print(outcome.message, file=sys.stderr)
        return 2 if outcome.status == "no_weak_skills" else 1

    out_path = Path(args.output or outcome.filename)
    out_path.write_bytes(outcome.content)
    print(f"{outcome.message} ({outcome.plan_source}) -> {out_path}")
    return 0


def cmd_init_db(args) -> int:
    from core.database import init_database

    init_database()
    print("OK")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Proficiency dashboard command line")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("overview", help="Print the six overview snapshots")
    p.add_argument("--component", help="LP or MT (default: all)")
    p.add_argument("--school-year")
    p.add_argument("--region")
    p.add_argument("--unit")
    p.add_argument("--policy", default="ratio", help="ratio (default) or stored_label")
    p.set_defaults(func=cmd_overview)

    p = sub.add_parser("remediation", help="Write a student's intervention plan PDF")
    p.add_argument("--student", required=True)
    p.add_argument("--class-name", default="")
    p.add_argument("--unit", default="")
    p.add_argument("--component")
    p.add_argument("--school-year")
    p.add_argument("--semester")
    p.add_argument("-o", "--output", help="Output path (default: generated file name)")
    p.add_argument("--no-generator", action="store_true", help="Skip text generation, use the deterministic plan")
    p.set_defaults(func=cmd_remediation)

    p = sub.add_parser("init-db", help="Create the results and links tables")
    p.set_defaults(func=cmd_init_db)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not os.environ.get("DATABASE_URL"):
        print("ERROR: Set DATABASE_URL in .env or environment.", file=sys.stderr)
        return 1
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
