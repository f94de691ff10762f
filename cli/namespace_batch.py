from infra.llm import BatchNotReadyError, ConfigurationError, InferenceError
from infra.pipeline.storage import DocumentNotFoundError
from pipeline.batch import BATCH_TYPES
from pipeline.state_machine import InvalidTransitionError
from cli.helpers import batches_table, console, fail, get_service, print_json, status_cell


def _controller(args):
    return get_service(args).batch


def _show(batch, as_json: bool):
    if as_json:
        print_json(batch.model_dump(mode="json", exclude_none=True))
        return
    console.print(batches_table([batch], title=f"Batch {batch.id}"))
    if batch.excluded:
        console.print(f"  Excluded {len(batch.excluded)} pages:")
        for page_id, reason in batch.excluded.items():
            console.print(f"    {page_id}: {reason}")
    if batch.error:
        console.print(f"  [red]Error: {batch.error}[/red]")


def cmd_batch_submit(args):
    try:
        batch = _controller(args).create(
            args.book_id,
            args.type,
            page_ids=args.pages or None,
            model=args.model,
            language=args.language,
            target_language=args.target_language,
            limit=args.limit,
            overwrite=args.overwrite,
            book_title=args.title,
        )
    except ConfigurationError as e:
        fail(f"Configuration error: {e}")
    except ValueError as e:
        fail(str(e))

    if batch.is_submitted:
        console.print(f"✅ Submitted {batch.id} ({len(batch.submitted_page_ids)} pages) as {batch.external_ref}")
    else:
        console.print(f"⚠️  Created {batch.id} but submission did not go through: {batch.error}")
    _show(batch, args.json)


def cmd_batch_status(args):
    controller = _controller(args)
    if args.book:
        batches = controller.list_for_book(args.id)
        if args.json:
            print_json([b.model_dump(mode="json", exclude_none=True) for b in batches])
        elif not batches:
            print(f"No batch jobs for {args.id}")
        else:
            console.print(batches_table(batches, title=f"Batch jobs for {args.id}"))
        return

    try:
        _show(controller.get(args.id), args.json)
    except DocumentNotFoundError:
        fail(f"Batch not found: {args.id}")


def cmd_batch_refresh(args):
    try:
        batch = _controller(args).refresh(args.batch_id, force=True)
    except DocumentNotFoundError:
        fail(f"Batch not found: {args.batch_id}")
    except ConfigurationError as e:
        fail(f"Configuration error: {e}")
    console.print(f"{batch.id}: {status_cell(batch.status)} ({batch.external_state or 'not submitted'})")


def cmd_batch_complete(args):
    try:
        result = _controller(args).complete(args.batch_id)
    except DocumentNotFoundError:
        fail(f"Batch not found: {args.batch_id}")
    except BatchNotReadyError as e:
        fail(str(e))
    except InferenceError as e:
        fail(f"{type(e).__name__}: {e}")

    if args.json:
        print_json(result)
        return
    note = " (already saved)" if result["already_saved"] else ""
    console.print(
        f"✅ {result['batch_id']}: {result['completed_pages']} saved, "
        f"{result['failed_pages']} failed{note}"
    )


def cmd_batch_cancel(args):
    try:
        batch = _controller(args).cancel(args.batch_id)
    except DocumentNotFoundError:
        fail(f"Batch not found: {args.batch_id}")
    except InvalidTransitionError as e:
        fail(str(e))
    console.print(f"✓ {batch.id} is now {status_cell(batch.status)}")


def cmd_batch_delete(args):
    if not args.yes:
        try:
            response = input(f"Delete batch {args.batch_id}? (yes/no): ").strip().lower()
        except (EOFError, KeyboardInterrupt):
            response = ""
        if response not in ('yes', 'y'):
            print("Cancelled.")
            return

    if _controller(args).delete(args.batch_id):
        console.print(f"✓ Deleted {args.batch_id}")
    else:
        fail(f"Batch not found: {args.batch_id}")


def cmd_batch_process(args):
    try:
        summary = _controller(args).process_pending()
    except ConfigurationError as e:
        fail(f"Configuration error: {e}")

    if args.json:
        print_json(summary)
        return
    console.print(
        f"Submitted {summary['submitted']}, refreshed {summary['refreshed']}, "
        f"completed {summary['completed']}"
    )
    for error in summary["errors"]:
        console.print(f"  [red]{error['batch_id']}: {error['error']}[/red]")


def setup_batch_parser(subparsers):
    batch_parser = subparsers.add_parser('batch', help='Provider-side batch OCR and translation')
    batch_subparsers = batch_parser.add_subparsers(dest='batch_command', help='Batch command')
    batch_subparsers.required = True

    submit_parser = batch_subparsers.add_parser('submit', help='Create and submit a batch for a book')
    submit_parser.add_argument('book_id', help='Book ID')
    submit_parser.add_argument('type', choices=sorted(BATCH_TYPES), help='Batch type')
    submit_parser.add_argument('--pages', nargs='*', help='Page IDs (default: every page that needs the stage)')
    submit_parser.add_argument('--model', help='Batch model')
    submit_parser.add_argument('--language', help='Source language')
    submit_parser.add_argument('--target-language', help='Translation target language')
    submit_parser.add_argument('--limit', type=int, help='Max pages in this batch')
    submit_parser.add_argument('--overwrite', action='store_true', help='Include pages that already have output')
    submit_parser.add_argument('--title', help='Book title (used in the provider display name)')
    submit_parser.add_argument('--json', action='store_true', help='Output as JSON')
    submit_parser.set_defaults(func=cmd_batch_submit)

    status_parser = batch_subparsers.add_parser('status', help='Show a batch, or all batches of a book')
    status_parser.add_argument('id', help='Batch ID (or book ID with --book)')
    status_parser.add_argument('--book', action='store_true', help='Treat ID as a book ID')
    status_parser.add_argument('--json', action='store_true', help='Output as JSON')
    status_parser.set_defaults(func=cmd_batch_status)

    refresh_parser = batch_subparsers.add_parser('refresh', help='Re-poll provider state')
    refresh_parser.add_argument('batch_id', help='Batch ID')
    refresh_parser.set_defaults(func=cmd_batch_refresh)

    complete_parser = batch_subparsers.add_parser('complete', help='Download and save results')
    complete_parser.add_argument('batch_id', help='Batch ID')
    complete_parser.add_argument('--json', action='store_true', help='Output as JSON')
    complete_parser.set_defaults(func=cmd_batch_complete)

    cancel_parser = batch_subparsers.add_parser('cancel', help='Cancel at the provider and locally')
    cancel_parser.add_argument('batch_id', help='Batch ID')
    cancel_parser.set_defaults(func=cmd_batch_cancel)

    delete_parser = batch_subparsers.add_parser('delete', help='Delete a batch record')
    delete_parser.add_argument('batch_id', help='Batch ID')
    delete_parser.add_argument('-y', '--yes', action='store_true', help='Skip confirmation prompt')
    delete_parser.set_defaults(func=cmd_batch_delete)

    process_parser = batch_subparsers.add_parser('process', help='Submit, poll and collect all pending batches')
    process_parser.add_argument('--json', action='store_true', help='Output as JSON')
    process_parser.set_defaults(func=cmd_batch_process)
