import time

from infra.llm import ConfigurationError
from infra.pipeline.storage import DocumentNotFoundError
from pipeline.state_machine import InvalidTransitionError
from cli.helpers import (
    console,
    fail,
    get_service,
    jobs_table,
    print_json,
    progress_cell,
    results_table,
    status_cell,
)


JOB_TYPES = ['ocr', 'translate', 'pipeline', 'batch_ocr', 'batch_translate']


def cmd_job_create(args):
    service = get_service(args)
    try:
        created = service.create_job(
            args.type,
            args.book_id,
            page_ids=args.pages or None,
            model=args.model,
            language=args.language,
            target_language=args.target_language,
            parallel_pages=args.parallel,
            overwrite=args.overwrite or None,
            prompt_name=args.prompt,
        )
    except ValueError as e:
        fail(str(e))

    if args.json:
        print_json(created)
        return

    console.print(f"✅ Created job [bold]{created['jobId']}[/bold] ({created['pagesQueued']} pages queued)")
    if 'batchId' in created:
        console.print(f"   Batch: {created['batchId']}")

    if args.run and args.type not in ('batch_ocr', 'batch_translate'):
        _run(service, created['jobId'])


def cmd_job_status(args):
    service = get_service(args)
    try:
        job = service.get(args.job_id)
    except DocumentNotFoundError:
        fail(f"Job not found: {args.job_id}")

    if args.json:
        print_json(job.to_status())
        return

    console.print(f"\n[bold]{job.id}[/bold] {job.type} on {job.book_id}")
    console.print(f"  Status:   {status_cell(job.status)}")
    console.print(f"  Progress: {progress_cell(job.progress.total, job.progress.completed, job.progress.failed)}")
    console.print(f"  Model:    {job.config.model or '-'}")
    if job.batch_id:
        console.print(f"  Batch:    {job.batch_id}")
    if job.error:
        console.print(f"  Error:    [red]{job.error}[/red]")

    if args.results and job.results:
        console.print(results_table([r.model_dump() for r in job.results], "Page results"))


def cmd_job_list(args):
    jobs = get_service(args).list(book_id=args.book, status=args.status)

    if args.json:
        print_json([j.to_status() for j in jobs])
        return

    if not jobs:
        print("No jobs.")
        return
    console.print(jobs_table(jobs))


def _run(service, job_id: str, max_chunks=None):
    try:
        result = service.process(job_id, max_chunks=max_chunks)
    except ConfigurationError as e:
        fail(f"Configuration error: {e}")
    except ValueError as e:
        fail(str(e))

    if result is None:
        fail(f"Job {job_id} is not runnable or is claimed by another worker")

    job = service.get(job_id)
    console.print(
        f"Job {job_id}: {status_cell(job.status)} "
        f"{progress_cell(job.progress.total, job.progress.completed, job.progress.failed)}"
    )


def cmd_job_run(args):
    _run(get_service(args), args.job_id, max_chunks=args.chunks)


def cmd_job_action(args):
    service = get_service(args)
    try:
        job = service.act(args.job_id, args.action)
    except DocumentNotFoundError:
        fail(f"Job not found: {args.job_id}")
    except (InvalidTransitionError, ValueError) as e:
        fail(str(e))

    console.print(f"✓ {args.action}: {job.id} is now {status_cell(job.status)}")


def cmd_worker(args):
    """Run streaming jobs and advance batch submissions until interrupted."""
    service = get_service(args)
    console.print(f"👷 Worker {service.scheduler.owner} started (interval {args.interval}s)")

    try:
        while True:
            ran = service.scheduler.run_pending(limit=args.limit)
            for job_id, result in ran:
                console.print(
                    f"  {job_id}: processed {result.processed}, remaining {result.remaining}"
                    + (" (done)" if result.done else "")
                )

            summary = service.batch.process_pending()
            if summary["submitted"] or summary["completed"] or summary["errors"]:
                console.print(
                    f"  batches: submitted {summary['submitted']}, "
                    f"refreshed {summary['refreshed']}, completed {summary['completed']}"
                )
            for error in summary["errors"]:
                console.print(f"  [red]{error['batch_id']}: {error['error']}[/red]")

            if args.once:
                break
            time.sleep(args.interval)
    except ConfigurationError as e:
        fail(f"Configuration error: {e}")
    except KeyboardInterrupt:
        console.print("\n⚠️  Worker stopped")


def setup_job_parser(subparsers):
    job_parser = subparsers.add_parser('job', help='Create, inspect and control jobs')
    job_subparsers = job_parser.add_subparsers(dest='job_command', help='Job command')
    job_subparsers.required = True

    create_parser = job_subparsers.add_parser('create', help='Queue a job for a book')
    create_parser.add_argument('type', choices=JOB_TYPES, help='Job type')
    create_parser.add_argument('book_id', help='Book ID')
    create_parser.add_argument('--pages', nargs='*', help='Page IDs (default: every page that needs the stage)')
    create_parser.add_argument('--model', help='Model (default: configured provider model)')
    create_parser.add_argument('--language', help='Source language')
    create_parser.add_argument('--target-language', help='Translation target language')
    create_parser.add_argument('--parallel', type=int, help='Pages processed concurrently (1-10)')
    create_parser.add_argument('--overwrite', action='store_true', help='Redo pages that already have output')
    create_parser.add_argument('--prompt', help='Named prompt template')
    create_parser.add_argument('--run', action='store_true', help='Run the job to completion after creating it')
    create_parser.add_argument('--json', action='store_true', help='Output as JSON')
    create_parser.set_defaults(func=cmd_job_create)

    status_parser = job_subparsers.add_parser('status', help='Show job status')
    status_parser.add_argument('job_id', help='Job ID')
    status_parser.add_argument('--results', action='store_true', help='Show per-page results')
    status_parser.add_argument('--json', action='store_true', help='Output as JSON')
    status_parser.set_defaults(func=cmd_job_status)

    list_parser = job_subparsers.add_parser('list', help='List jobs')
    list_parser.add_argument('--book', help='Only jobs for this book')
    list_parser.add_argument('--status', help='Only jobs with this status')
    list_parser.add_argument('--json', action='store_true', help='Output as JSON')
    list_parser.set_defaults(func=cmd_job_list)

    run_parser = job_subparsers.add_parser('run', help='Run a streaming job in this process')
    run_parser.add_argument('job_id', help='Job ID')
    run_parser.add_argument('--chunks', type=int, default=None, help='Stop after N chunks (default: until done)')
    run_parser.set_defaults(func=cmd_job_run)

    for action, help_text in (
        ('pause', 'Pause a pending or processing job'),
        ('resume', 'Resume a paused job'),
        ('cancel', 'Cancel a job (batch jobs also cancel the provider batch)'),
        ('retry', 'Retry failed pages of a failed or cancelled job'),
    ):
        action_parser = job_subparsers.add_parser(action, help=help_text)
        action_parser.add_argument('job_id', help='Job ID')
        action_parser.set_defaults(func=cmd_job_action, action=action)

    worker_parser = subparsers.add_parser('worker', help='Process pending jobs and batches in a loop')
    worker_parser.add_argument('--once', action='store_true', help='Single pass, then exit')
    worker_parser.add_argument('--interval', type=float, default=30.0, help='Seconds between passes')
    worker_parser.add_argument('--limit', type=int, default=None, help='Max streaming jobs per pass')
    worker_parser.set_defaults(func=cmd_worker)
