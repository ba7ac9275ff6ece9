"""Main application entry point."""

import argparse
import logging
import sys


def setup_logging(verbose: bool = False):
    """
    Set up logging configuration.

    Args:
        verbose: Enable verbose logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
        ],
    )


def cmd_list_datasets(args):
    """Handle list-datasets subcommand."""
    setup_logging(args.verbose)
    from wms_bodies.cli import run_list_datasets

    return run_list_datasets(args.settings)


def cmd_intervals(args):
    """Handle intervals subcommand."""
    setup_logging(args.verbose)
    from wms_bodies.cli import run_intervals

    return run_intervals(args.settings, args.body, args.wms)


def cmd_prefetch(args):
    """Handle prefetch subcommand - warm the tile cache for a data set."""
    setup_logging(args.verbose)
    from wms_bodies.cli import run_prefetch

    try:
        return run_prefetch(args.settings, args.body, args.wms, args.start, args.end, args.limit)
    except KeyboardInterrupt:
        logging.warning("✗ Interrupted while prefetching")
        return 1


def cmd_render(args):
    """Handle render subcommand - write the blended surface texture at a time."""
    setup_logging(args.verbose)
    from wms_bodies.cli import run_render

    return run_render(args.settings, args.body, args.time, args.output, args.wms, args.timeout)


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        description="Simple WMS Bodies - time-dependent WMS textures for planetary bodies",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def add_common(subparser, with_body: bool = True):
        subparser.add_argument("settings", help="YAML settings file")
        if with_body:
            subparser.add_argument("body", help="Name of the body")
            subparser.add_argument("--wms", help="Name of the WMS data set (default: the body's first)")
        subparser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    # List data sets subcommand
    list_parser = subparsers.add_parser("list-datasets", help="List bodies and their WMS data sets")
    add_common(list_parser, with_body=False)
    list_parser.set_defaults(func=cmd_list_datasets)

    # Intervals subcommand
    intervals_parser = subparsers.add_parser("intervals", help="Show the time intervals of a data set")
    add_common(intervals_parser)
    intervals_parser.set_defaults(func=cmd_intervals)

    # Prefetch subcommand
    prefetch_parser = subparsers.add_parser("prefetch", help="Download the buckets of a data set into the cache")
    add_common(prefetch_parser)
    prefetch_parser.add_argument("--start", help="Earliest bucket to download (ISO-8601)")
    prefetch_parser.add_argument("--end", help="Latest bucket to download (ISO-8601)")
    prefetch_parser.add_argument("--limit", type=int, help="Maximum number of buckets to download")
    prefetch_parser.set_defaults(func=cmd_prefetch)

    # Render subcommand
    render_parser = subparsers.add_parser("render", help="Render the surface texture at a simulation time")
    add_common(render_parser)
    render_parser.add_argument("time", help="Simulation time (ISO-8601 or 'current')")
    render_parser.add_argument("-o", "--output", default="surface.png", help="Output image (default: surface.png)")
    render_parser.add_argument(
        "--timeout", type=float, default=30.0, help="Seconds to wait for downloads (default: 30)"
    )
    render_parser.set_defaults(func=cmd_render)

    return parser


def main(argv=None):
    """Main application entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
