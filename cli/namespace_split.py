from rich.table import Table

from infra.pipeline.storage import ImageFetchError
from pipeline.split import apply_splits, check_book_for_splits, detect_gutter, revert_splits
from cli.helpers import console, fail, get_library, print_json


def cmd_split_detect(args):
    library = get_library(args)

    if args.image:
        try:
            image = library.images.open(args.book_id)
        except ImageFetchError as e:
            fail(str(e))
        detection = detect_gutter(image, library.config.split)
        print_json(detection.to_dict(include_profile=args.profile))
        return

    report = check_book_for_splits(library, args.book_id)
    if args.json:
        print_json(report)
        return

    console.print(
        f"Checked {report['checked']} pages of {args.book_id}: "
        f"{report['needs_splitting']} look like two-page spreads"
    )
    if report['candidates']:
        table = Table(title="Split candidates")
        table.add_column("Page")
        table.add_column("#", justify="right")
        table.add_column("Position", justify="right")
        table.add_column("Confidence")
        table.add_column("Depth", justify="right")
        for c in report['candidates']:
            table.add_row(
                c['page_id'],
                str(c['page_number']),
                str(c['position']),
                c['confidence'],
                f"{c['depth']:.3f}",
            )
        console.print(table)
    for error in report['errors']:
        console.print(f"  [red]{error['page_id']}: {error['error']}[/red]")


def cmd_split_apply(args):
    library = get_library(args)

    if args.detected:
        report = check_book_for_splits(library, args.book_id)
        splits = [
            {"page_id": c["page_id"], "split_position": c["position"]}
            for c in report["candidates"]
            if c["confidence"] in args.confidence
        ]
    else:
        splits = []
        for item in args.splits or []:
            page_id, _, position = item.partition(':')
            if not position:
                fail(f"Expected PAGE_ID:POSITION, got {item!r}")
            try:
                splits.append({"page_id": page_id, "split_position": float(position)})
            except ValueError:
                fail(f"Invalid split position in {item!r}")

    if not splits:
        print("Nothing to split.")
        return

    result = apply_splits(library, splits, book_id=args.book_id)
    console.print(f"✅ Split {result['split_count']} pages; book now has {result['total_pages']} pages")
    for skipped in result['skipped']:
        console.print(f"  ⏭️  {skipped['page_id']}: {skipped['reason']}")


def cmd_split_revert(args):
    result = revert_splits(get_library(args), args.page_ids)
    console.print(
        f"✓ Removed {result['deleted']} split pages, cleared {result['reverted']} crops; "
        f"{result['total_pages']} pages remain"
    )


def setup_split_parser(subparsers):
    split_parser = subparsers.add_parser('split', help='Detect and split two-page spreads')
    split_subparsers = split_parser.add_subparsers(dest='split_command', help='Split command')
    split_subparsers.required = True

    detect_parser = split_subparsers.add_parser('detect', help='Find pages that look like two-page spreads')
    detect_parser.add_argument('book_id', help='Book ID (or an image reference with --image)')
    detect_parser.add_argument('--image', action='store_true', help='Analyze a single image reference')
    detect_parser.add_argument('--profile', action='store_true', help='Include column profiles (--image only)')
    detect_parser.add_argument('--json', action='store_true', help='Output as JSON')
    detect_parser.set_defaults(func=cmd_split_detect)

    apply_parser = split_subparsers.add_parser('apply', help='Split pages at the given positions')
    apply_parser.add_argument('book_id', help='Book ID')
    apply_parser.add_argument('splits', nargs='*', help='PAGE_ID:POSITION (position on the 0-1000 scale)')
    apply_parser.add_argument('--detected', action='store_true', help='Split every detected candidate')
    apply_parser.add_argument(
        '--confidence', nargs='+', default=['high'], choices=['high', 'medium', 'low'],
        help='Candidate confidences to accept with --detected (default: high)'
    )
    apply_parser.set_defaults(func=cmd_split_apply)

    revert_parser = split_subparsers.add_parser('revert', help='Undo splits of the given source pages')
    revert_parser.add_argument('page_ids', nargs='+', help='Source page IDs')
    revert_parser.set_defaults(func=cmd_split_revert)
