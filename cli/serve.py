from web.config import add_server_arguments


def cmd_serve(args):
    from web.app import create_app, run_server

    run_server(create_app(storage_root=args.storage_root), args.host, args.port, args.debug)


def setup_serve_parser(subparsers):
    serve_parser = subparsers.add_parser('serve', help='Start the HTTP API server')
    add_server_arguments(serve_parser)
    serve_parser.set_defaults(func=cmd_serve)
