import argparse
import logging
import sys

from . import config
from .config import Config
from .errors import BackendError, ConfigError
from .importer import ImportPipeline
from .iterator import IteratePipeline

logger = logging.getLogger(__name__)

IMPORT_DESCRIPTION = "Import Wikidata items into a key-value or document store."
ITERATE_DESCRIPTION = "Iterate stored Wikidata items and index the claims of one property."


def configure_logging(verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _add_common_arguments(parser):
    parser.add_argument(
        "-d",
        "--db-type",
        choices=config.BACKENDS,
        default=config.DEFAULT_BACKEND,
        help=f"Backend kind: 'kv' (SQLite bucket) or 'doc' (MongoDB). Default: {config.DEFAULT_BACKEND}.",
    )
    parser.add_argument(
        "-u",
        "--urls",
        type=str,
        default=None,
        help="Backend endpoint(s), separated by ','. Default: 'localhost' for doc, 'data' for kv.",
    )
    parser.add_argument(
        "-b",
        "--bucket",
        type=str,
        default=config.DEFAULT_DATABASE,
        help=f"Database / bucket name. Default: {config.DEFAULT_DATABASE}.",
    )
    parser.add_argument(
        "-t",
        "--threads",
        type=int,
        default=config.DEFAULT_MAX_WORKERS,
        help=f"Number of parallel worker threads. Default: {config.DEFAULT_MAX_WORKERS}.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=config.DRAIN_TIMEOUT_SECONDS / 60,
        help="Minutes to wait for a batch (import) or all pages (iterate) to finish. Default: 15.",
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")


def build_import_parser(parser=None):
    parser = parser or argparse.ArgumentParser(prog="wdstore-import", description=IMPORT_DESCRIPTION)
    _add_common_arguments(parser)
    parser.add_argument("-f", "--first", type=int, default=config.DEFAULT_FIRST_ID, help="First Wikidata item id. Default: 1.")
    parser.add_argument("-l", "--last", type=int, default=None, help="Last Wikidata item id. Default: first id.")
    return parser


def build_iterate_parser(parser=None):
    parser = parser or argparse.ArgumentParser(prog="wdstore-iterate", description=ITERATE_DESCRIPTION)
    _add_common_arguments(parser)
    parser.add_argument("-f", "--first", type=int, default=config.DEFAULT_FIRST_ID, help="First stored item position. Default: 1.")
    parser.add_argument(
        "-l", "--last", type=int, default=None, help="Last stored item position. Default: number of stored items."
    )
    parser.add_argument(
        "-p",
        "--property",
        type=str,
        default=config.DEFAULT_PROPERTY,
        help=f"Claim property to index. Default: {config.DEFAULT_PROPERTY}.",
    )
    return parser


def config_from_args(args, for_import):
    last_id = args.last
    if for_import and last_id is None:
        last_id = args.first
    return Config.create(
        backend=args.db_type,
        endpoints=args.urls,
        database=args.bucket,
        first_id=args.first,
        last_id=last_id,
        max_workers=args.threads,
        property=getattr(args, "property", None),
        drain_timeout=args.timeout * 60,
    )


def _run(args, for_import):
    configure_logging(args.verbose)
    try:
        conf = config_from_args(args, for_import)
    except ConfigError as exc:
        logger.error("[!] Invalid configuration: %s", exc)
        return 1
    progress = not args.no_progress
    try:
        if for_import:
            ImportPipeline(conf, progress=progress).run()
        else:
            IteratePipeline(conf, progress=progress).run()
    except (ConfigError, BackendError) as exc:
        logger.error("[!] %s", exc)
        return 1
    return 0


def import_main(argv=None):
    args = build_import_parser().parse_args(argv)
    return _run(args, for_import=True)


def iterate_main(argv=None):
    args = build_iterate_parser().parse_args(argv)
    return _run(args, for_import=False)


def main(argv=None):
    parser = argparse.ArgumentParser(prog="wdstore", description="Wikidata importer and claim indexer.")
    subparsers = parser.add_subparsers(dest="command", required=True)
    build_import_parser(subparsers.add_parser("import", help=IMPORT_DESCRIPTION, description=IMPORT_DESCRIPTION))
    build_iterate_parser(subparsers.add_parser("iterate", help=ITERATE_DESCRIPTION, description=ITERATE_DESCRIPTION))
    args = parser.parse_args(argv)
    return _run(args, for_import=args.command == "import")


if __name__ == "__main__":
    sys.exit(main())
