from rich.table import Table

from pipeline.cleanup import CleanupSweeper
from cli.helpers import console, get_library, print_json


def cmd_cleanup_report(args):
    report = CleanupSweeper(get_library(args)).report()

    if args.json:
        print_json(report)
        return

    counts = report["counts"]
    console.print(
        f"\n🧹 {counts['orphan']} orphan, {counts['expired']} expired batch jobs "
        f"({report['in_grace']} orphans still within the grace period)"
    )
    console.print(f"   Pages affected: {report['pages_affected']}, jobs affected: {report['jobs_affected']}")

    if report["by_book"]:
        table = Table(title="By book")
        table.add_column("Book")
        table.add_column("Orphan", justify="right")
        table.add_column("Expired", justify="right")
        table.add_column("Pages", justify="right")
        for book_id, row in sorted(report["by_book"].items()):
            title = f"{book_id} ({row['book_title']})" if row.get("book_title") else book_id
            table.add_row(title, str(row["orphan"]), str(row["expired"]), str(row["pages"]))
        console.print(table)


def cmd_cleanup_sweep(args):
    result = CleanupSweeper(get_library(args)).sweep(dry_run=args.dry_run)

    if args.json:
        print_json(result)
        return

    archived = result["archived"]
    verb = "Would archive" if args.dry_run else "Archived"
    console.print(f"{verb} {archived['orphan']} orphan and {archived['expired']} expired batch jobs")
    if result["skipped"]:
        console.print(f"   Skipped {len(result['skipped'])} recent orphans")


def setup_cleanup_parser(subparsers):
    cleanup_parser = subparsers.add_parser('cleanup', help='Archive orphaned and expired batch jobs')
    cleanup_subparsers = cleanup_parser.add_subparsers(dest='cleanup_command', help='Cleanup command')
    cleanup_subparsers.required = True

    report_parser = cleanup_subparsers.add_parser('report', help='Show what a sweep would archive')
    report_parser.add_argument('--json', action='store_true', help='Output as JSON')
    report_parser.set_defaults(func=cmd_cleanup_report)

    sweep_parser = cleanup_subparsers.add_parser('sweep', help='Archive and delete orphaned and expired batch jobs')
    sweep_parser.add_argument('--dry-run', action='store_true', help='Report without archiving')
    sweep_parser.add_argument('--json', action='store_true', help='Output as JSON')
    sweep_parser.set_defaults(func=cmd_cleanup_sweep)
