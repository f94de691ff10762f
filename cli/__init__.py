import argparse

import cli.config
from cli.namespace_job import setup_job_parser
from cli.namespace_batch import setup_batch_parser
from cli.namespace_split import setup_split_parser
from cli.namespace_cleanup import setup_cleanup_parser
from cli.serve import setup_serve_parser


def create_parser():
    parser = argparse.ArgumentParser(
        prog='scriptorium',
        description='Scriptorium - split, transcribe and translate manuscript scans',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Configuration (run first!)
  scriptorium config init
  scriptorium config show
  scriptorium config set defaults.parallel_pages 5

  # Spreads
  scriptorium split detect my-book
  scriptorium split apply my-book --detected
  scriptorium split apply my-book page_a:512 page_b:498
  scriptorium split revert page_a

  # Streaming jobs
  scriptorium job create pipeline my-book --run
  scriptorium job create ocr my-book --pages p1 p2 --parallel 2
  scriptorium job status job_1234 --results
  scriptorium job pause job_1234
  scriptorium worker

  # Batch jobs
  scriptorium batch submit my-book ocr --limit 50
  scriptorium batch status my-book --book
  scriptorium batch complete batch_1234
  scriptorium batch process

  # Retention
  scriptorium cleanup report
  scriptorium cleanup sweep --dry-run

  # HTTP API
  scriptorium serve --port 8080
"""
    )
    parser.add_argument(
        '--storage-root',
        default=None,
        help='Library root (default: $SCRIPTORIUM_STORAGE_ROOT or ~/Documents/scriptorium)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Command namespace')
    subparsers.required = True

    cli.config.setup_parser(subparsers)
    setup_job_parser(subparsers)
    setup_batch_parser(subparsers)
    setup_split_parser(subparsers)
    setup_cleanup_parser(subparsers)
    setup_serve_parser(subparsers)

    return parser


def main(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)
    args.func(args)
