#!/usr/bin/env python3
"""
SubAlign Batch Processing Entry Point

Aligns the JP and EN subtitles of every episode that has a video and both
subtitle tracks, recording each outcome in a resumable JSON database.
"""

import argparse
import logging
import os
import sys

from subalign.batch import BatchAligner, SubprocessEpisodeRunner
from subalign.cli import add_common_arguments, add_search_arguments, load_configuration, search_params_from_config
from subalign.exceptions import BatchStopped, SubAlignError
from subalign.utils import ensure_dir_exists

logger = logging.getLogger(__name__)


def run_batch_processing():
    """Parses arguments, sets up, and runs the batch alignment."""
    parser = argparse.ArgumentParser(
        description="SubAlign Batch: align JP/EN subtitle offsets for every episode.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    add_common_arguments(parser)
    parser.add_argument("--videos-dir", default=None, help="Override videos_dir.")
    parser.add_argument("--jp-subs-dir", default=None, help="Override jp_subs_dir.")
    parser.add_argument("--en-subs-dir", default=None, help="Override en_subs_dir.")
    parser.add_argument("--offsets-file", default=None, help="Override offsets_file.")
    parser.add_argument("--db-file", default=None, help="Override db_file.")
    parser.add_argument("--work-root", dest="work_dir", default=None, help="Override work_dir.")
    parser.add_argument("--episodes", default=None, help='Comma list, e.g. "s1e1,s4e30" (default: all).')
    parser.add_argument("--limit", type=int, default=0,
                        help="Process only the first N episodes after filtering (0 = all).")
    parser.add_argument("--sample-sec", type=float, default=None, help="Override sample_sec.")
    parser.add_argument("--max-attempts", type=int, default=None, help="Override max_attempts.")
    parser.add_argument("--force", action="store_true", help="Recompute episodes already aligned in the DB.")
    parser.add_argument("--stop-on-error", action="store_true", help="Stop at the first failed episode.")
    parser.add_argument("--no-write-offsets", action="store_true", help="Do not update the offsets file.")
    add_search_arguments(parser)

    args = parser.parse_args()
    config = load_configuration(args, log_file='subalign_batch_init.log')

    try:
        work_root = config.get('work_dir')
        ensure_dir_exists(work_root)
        params = search_params_from_config(config)
        runner = SubprocessEpisodeRunner(
            work_root=os.path.abspath(work_root),
            offsets_file=os.path.abspath(config['offsets_file']),
            params=params,
            sample_sec=config.get('sample_sec', 60),
            max_attempts=int(config.get('max_attempts', 4)),
            config_path=os.path.abspath(args.config) if os.path.exists(args.config) else None,
            device=config.get('device'),
            log_level=args.log_level,
            timeout_sec=config.get('episode_timeout_sec'),
        )
        batch = BatchAligner(config, runner, params)
        summary = batch.run(
            episodes=args.episodes,
            limit=args.limit,
            force=args.force,
            stop_on_error=args.stop_on_error,
            write_offsets=not args.no_write_offsets,
        )
    except BatchStopped as e:
        logger.error(f"{e}")
        sys.exit(2)
    except SubAlignError as e:
        logger.critical(f"Batch could not run: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("Batch process interrupted by user (Ctrl+C). Exiting.")
        sys.exit(1)

    logger.info(f"DB summary: {summary.to_dict()}")
    sys.exit(2 if summary.failed > 0 else 0)


if __name__ == "__main__":
    if sys.version_info < (3, 8):
        sys.stderr.write("SubAlign requires Python 3.8 or later.\n")
        sys.exit(1)

    run_batch_processing()
