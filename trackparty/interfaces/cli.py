import argparse
import asyncio
import json
import logging
import signal
import sys
import time
from typing import List, Optional

from dotenv import load_dotenv

from trackparty.application.aggregation import Aggregator
from trackparty.crosscutting.config import SpotifyClientConfig, load_config
from trackparty.crosscutting.logging import setup_logging
from trackparty.crosscutting.metrics import AggregationMetrics
from trackparty.crosscutting.reporting import create_report, create_report_header
from trackparty.domain.entities import ExplicitPreference, normalize_preference
from trackparty.infrastructure.providers.spotify import SpotifyTrackSource
from trackparty.infrastructure.stores import load_lobby_snapshot

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_EMPTY = 2


class CLI:
    """Command Line Interface for trackparty."""

    def __init__(self):
        """Initialize CLI."""
        # Do not auto-load .env to keep tests deterministic
        self.parser = self._create_parser()
        self._start_time = None

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='trackparty',
            description='Build a shared quiz track list from a group\'s listening history'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        aggregate_parser = subparsers.add_parser('aggregate', help='Aggregate a group track list')
        aggregate_parser.add_argument(
            '--snapshot',
            required=True,
            help='Lobby snapshot JSON with users, tokens and groups'
        )
        aggregate_parser.add_argument(
            '--group',
            required=True,
            help='Group code to aggregate'
        )
        aggregate_parser.add_argument(
            '--count',
            type=int,
            default=None,
            help='Maximum number of tracks (default from TRACKPARTY_TARGET_COUNT or 100)'
        )
        aggregate_parser.add_argument(
            '--seed',
            type=int,
            default=None,
            help='Seed for a reproducible track order'
        )
        aggregate_parser.add_argument(
            '--output',
            help='Write the aggregation result JSON to this file (default: stdout)'
        )
        aggregate_parser.add_argument(
            '--report',
            help='Write a per-member contribution report to this file'
        )
        aggregate_parser.add_argument(
            '--env-file',
            help='Optional .env file with TRACKPARTY_* settings'
        )
        aggregate_parser.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default='INFO',
            help='Set logging level'
        )

        members_parser = subparsers.add_parser('members', help='List group members and preferences')
        members_parser.add_argument(
            '--snapshot',
            required=True,
            help='Lobby snapshot JSON with users, tokens and groups'
        )
        members_parser.add_argument(
            '--group',
            required=True,
            help='Group code'
        )
        members_parser.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default='WARNING',
            help='Set logging level'
        )

        return parser

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        def signal_handler(signum, frame):
            logger = logging.getLogger(__name__)
            logger.warning(f"Received signal {signum}, shutting down...")
            self._cleanup_resources()
            sys.exit(130)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def _cleanup_resources(self) -> None:
        """Log execution time on exit."""
        logger = logging.getLogger(__name__)
        if self._start_time:
            duration = time.time() - self._start_time
            logger.info(f"CLI execution time: {duration:.2f}s")
            self._start_time = None

    def _validate_arguments(self, args: argparse.Namespace) -> None:
        """Validate CLI arguments."""
        if getattr(args, 'count', None) is not None and args.count <= 0:
            raise ValueError("--count must be a positive integer")
        if getattr(args, 'seed', None) is not None and args.seed < 0:
            raise ValueError("--seed must be a non-negative integer")

    def _aggregate(self, args: argparse.Namespace) -> int:
        """Run one aggregation and write the result."""
        logger = logging.getLogger(__name__)

        if args.env_file:
            load_dotenv(args.env_file)
        config = load_config()
        target_count = args.count or config.default_target_count

        lobby, credentials = load_lobby_snapshot(args.snapshot)
        track_source = SpotifyTrackSource(
            config=SpotifyClientConfig.from_env(),
            top_tracks_limit=config.top_tracks_limit,
        )
        metrics = AggregationMetrics()
        aggregator = Aggregator(lobby, credentials, track_source, config=config, metrics=metrics)

        header = create_report_header(args.group, target_count, args.seed)
        result = asyncio.run(aggregator.aggregate(args.group, target_count, args.seed))

        payload = json.dumps(result.to_json(), indent=2, ensure_ascii=False)
        if args.output:
            with open(args.output, 'w') as f:
                f.write(payload)
            logger.info(f"Result saved to: {args.output}")
        else:
            print(payload)

        if args.report:
            create_report(header, result, metrics).save(args.report)
            logger.info(f"Report saved to: {args.report}")

        if result.is_empty:
            print("No tracks available - check that players have connected accounts", file=sys.stderr)
            return EXIT_EMPTY

        contrib = ', '.join(f"{member}: {count}" for member, count in result.primary_contributions().items())
        print(f"Aggregated {len(result.tracks)} tracks from {len(result.by_member)} members ({contrib})",
              file=sys.stderr)
        return EXIT_OK

    def _list_members(self, args: argparse.Namespace) -> int:
        """List group members with role and source preference."""
        lobby, credentials = load_lobby_snapshot(args.snapshot)

        print(f"Members of group {args.group}:")
        print("-" * 50)
        for member in lobby.members_detailed(args.group):
            connected = "connected" if credentials.get_tokens(member.base_id) else "no token"
            preference = normalize_preference(lobby.get_preference(args.group, member.base_id))
            if isinstance(preference, ExplicitPreference):
                sources = [name for name, enabled in (
                    ('liked', preference.include_liked),
                    ('recent', preference.include_recent),
                    (f"playlist:{preference.playlist_id}", preference.include_playlist),
                ) if enabled]
                described = ', '.join(sources)
            else:
                described = 'top tracks'
            print(f"{member.id} [{member.role}] ({connected}) sources: {described}")
        return EXIT_OK

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI and return the process exit code."""
        self._start_time = time.time()

        try:
            args = self.parser.parse_args(argv)

            if not args.command:
                self.parser.print_help()
                return EXIT_ERROR

            setup_logging(args.log_level)
            self._validate_arguments(args)

            if args.command == 'aggregate':
                return self._aggregate(args)
            if args.command == 'members':
                return self._list_members(args)

            self.parser.print_help()
            return EXIT_ERROR

        except KeyboardInterrupt:
            logger = logging.getLogger(__name__)
            logger.warning("Operation cancelled by user")
            return 130
        except Exception as e:
            logger = logging.getLogger(__name__)
            logger.error(f"CLI error: {e}")
            return EXIT_ERROR
        finally:
            self._cleanup_resources()


def main():
    """Main entry point."""
    cli = CLI()
    cli._setup_signal_handlers()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
