
import asyncio
import argparse
import logging
import sys
from pathlib import Path

from dumpsplit import __version__
from dumpsplit.appliance import detect_uuid, missing_file_hint
from dumpsplit.config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_LOG_FILE,
    DEFAULT_MULTIPLIER,
    ENDPOINTS,
    UNKNOWN,
    SplitterConfig,
    TransferMode,
    load_config_file,
    parse_size,
    resolve_endpoint,
)
from dumpsplit.errors import (
    InsufficientSpaceError,
    MissingPartError,
    PreconditionError,
    UploadError,
)
from dumpsplit.pipeline.fingerprint import digest_path
from dumpsplit.pipeline.planner import describe, parse_names
from dumpsplit.pipeline.runner import RunResult, SplitPipeline
from dumpsplit.transfer import FtpUploader

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_file=DEFAULT_LOG_FILE, debug=False, quiet=False):
    """Log to stdout, and to log_file unless it is empty"""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    if debug:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)


def size_argument(value):
    try:
        return parse_size(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def create_parser():
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        prog='dumpsplit',
        description=(
            'Split a file into chunks of a given size, generate an md5 fingerprint '
            'of the original file plus all chunks, and upload them to the AMER or '
            'EMEA support server.'
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
If one or more parts went missing, got corrupt or truncated during transfer,
upload just those parts again with:

  dumpsplit -c <case_sr> -m missing_part1,missing_part2

Examples:
  # Split into 512MB chunks and upload to the EMEA server
  dumpsplit -E -s 512m -u 5F7J2FABC -c 00555010 vmdump.0

  # Split only, for systems not connected to the Internet
  dumpsplit -n -c 00555010 vmdump.0

  # Re-upload two parts that failed their checksum
  dumpsplit -c 00555010 -m vmdump.0.partab,vmdump.0.partad
        """
    )

    region = parser.add_mutually_exclusive_group()
    region.add_argument(
        '-A',
        dest='region',
        action='store_const',
        const='AMER',
        help='Use the AMER ftp server (default)'
    )
    region.add_argument(
        '-E',
        dest='region',
        action='store_const',
        const='EMEA',
        help='Use the EMEA ftp server'
    )

    parser.add_argument(
        '-c',
        dest='case_ref',
        metavar='<case_sr>',
        help='Case Reference / Service Request number (mandatory)'
    )
    parser.add_argument(
        '-m',
        dest='missing',
        metavar='<missing>',
        help='Upload just the missing parts (comma separated list)'
    )
    parser.add_argument(
        '-n',
        dest='no_upload',
        action='store_true',
        help='Do NOT attempt to upload'
    )
    parser.add_argument(
        '-s',
        dest='size',
        type=size_argument,
        metavar='<size>',
        help=f'Size to split the parts into, eg 512m or 1024m (default: {DEFAULT_CHUNK_SIZE})'
    )
    parser.add_argument(
        '-u',
        dest='uuid',
        metavar='<uuid>',
        help='UUID of the appliance (detected automatically when possible)'
    )
    parser.add_argument(
        'filename',
        nargs='?',
        help='File to split and upload'
    )

    parser.add_argument(
        '--config',
        type=Path,
        help='YAML file with default settings'
    )
    parser.add_argument(
        '--multiplier',
        type=float,
        help=f'Free space needed as a multiple of the file size (default: {DEFAULT_MULTIPLIER})'
    )
    parser.add_argument(
        '--work-dir',
        type=Path,
        help='Directory for parts, fingerprints and metadata (default: current directory)'
    )
    parser.add_argument(
        '--abort-on-error',
        action='store_true',
        default=None,
        help='Stop at the first failed upload instead of continuing'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging'
    )
    parser.add_argument(
        '-q', '--quiet',
        action='store_true',
        help='Minimal output'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    return parser


def setting_number(settings, key, default, kind):
    value = settings.get(key, default)
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be a number, got {value!r}")


def build_config(args, settings) -> SplitterConfig:
    """Merge CLI arguments over file settings into one immutable config"""
    if args.missing:
        mode = TransferMode.SELECTIVE
    elif args.no_upload:
        mode = TransferMode.DRY_RUN
    else:
        mode = TransferMode.FULL

    endpoints = dict(ENDPOINTS)
    endpoints.update({k.upper(): v for k, v in (settings.get('endpoints') or {}).items()})
    endpoint = resolve_endpoint(args.region or settings.get('endpoint', 'AMER'), endpoints)

    if args.size is not None:
        chunk_size = args.size
    else:
        chunk_size = parse_size(settings.get('chunk_size', DEFAULT_CHUNK_SIZE))

    abort = args.abort_on_error
    if abort is None:
        abort = bool(settings.get('abort_on_upload_error', False))

    multiplier = args.multiplier
    if multiplier is None:
        multiplier = setting_number(settings, 'multiplier', DEFAULT_MULTIPLIER, float)

    uuid = args.uuid or detect_uuid()

    return SplitterConfig(
        case_ref=args.case_ref or UNKNOWN,
        uuid=uuid,
        endpoint=endpoint,
        mode=mode,
        chunk_size=chunk_size,
        multiplier=multiplier,
        slack_bytes=setting_number(settings, 'slack_bytes', 0, int),
        missing_parts=tuple(parse_names(args.missing or '')),
        abort_on_upload_error=abort,
        work_dir=args.work_dir or Path(settings.get('work_dir', '.')),
        remote_root=settings.get('remote_root', 'nstor')
    )


def report_result(result: RunResult):
    """Tell the operator what is left to do"""
    if result.plan.manual:
        logger.info("Parts have been split but not uploaded.")
        logger.info(f"Please manually upload these to the support portal: {describe(result.plan.manual)}")
    elif result.source is not None and result.report.ok:
        leftovers = [result.source_digest_path]
        for part in result.parts:
            leftovers += [part.path, digest_path(part.path)]
        logger.info(f"Parts have been uploaded, please consider deleting the following: {describe(leftovers)}")

    for failure in result.report.failed:
        logger.error(f"Not uploaded: {failure.artifact} -> {failure.destination}")
    if result.report.failed:
        logger.error(
            "Re-upload the failed artifacts with -m "
            f"{','.join(failure.artifact for failure in result.report.failed)}"
        )


async def run(config: SplitterConfig, filename=None) -> RunResult:
    """Run the pipeline for one invocation"""
    uploader = None
    if config.mode != TransferMode.DRY_RUN:
        uploader = FtpUploader(config.endpoint, remote_root=config.remote_root)

    pipeline = SplitPipeline(config, uploader=uploader, hint=missing_file_hint())
    return await pipeline.run(filename)


def main(argv=None) -> int:
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_config_file(args.config)
    except (OSError, ValueError) as e:
        parser.exit(1, f"dumpsplit: cannot load settings: {e}\n")

    setup_logging(
        log_file=settings.get('log_file', DEFAULT_LOG_FILE),
        debug=args.verbose,
        quiet=args.quiet
    )

    try:
        config = build_config(args, settings)
        config.validate()
    except PreconditionError as e:
        logger.error(f"{e}, must exit")
        return 1
    except ValueError as e:
        logger.error(f"Invalid settings: {e}")
        return 1

    if config.mode != TransferMode.SELECTIVE and not args.filename:
        parser.print_usage()
        return 1

    try:
        result = asyncio.run(run(config, args.filename))
    except InsufficientSpaceError as e:
        check = e.check
        logger.error(f"Insufficient free space in {check.directory} to allow splitting {args.filename}")
        logger.error(f"File size is      : {check.source_size} bytes")
        logger.error(f"Required space is : {check.required} bytes")
        return 0
    except MissingPartError as e:
        logger.error(str(e))
        if e.hint:
            logger.error(e.hint)
        logger.error("Exiting now ...")
        return 1
    except PreconditionError as e:
        logger.error(str(e))
        logger.error("Exiting now ...")
        return 1
    except UploadError as e:
        logger.error(f"Aborting after failed upload of {e.artifact}")
        return 1
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
        return 130
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1

    report_result(result)
    if not result.report.ok:
        return 1

    logger.info("Finished")
    return 0


if __name__ == '__main__':
    sys.exit(main())
