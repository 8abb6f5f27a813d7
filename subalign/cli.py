"""Command-Line Interface handler for SubAlign."""

import argparse
import logging
import sys

from .audio_extractor import AudioExtractor
from .calibration import CalibrationPolicy
from .config_loader import DEFAULT_CONFIG_PATH, ConfigLoader
from .episode_aligner import EpisodeAligner
from .exceptions import ConfigurationError, SubAlignError
from .log_setup import parse_log_level, setup_logging, setup_logging_from_config
from .offset_search import SearchParams, estimate_offset
from .subtitle_parser import cues_in_window, load_cues
from .transcriber import WhisperTranscriber, load_asr_segments
from .utils import format_offset

logger = logging.getLogger(__name__)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# argparse dest -> config key
_PATH_OVERRIDES = {
    'videos_dir': 'videos_dir',
    'jp_subs_dir': 'jp_subs_dir',
    'en_subs_dir': 'en_subs_dir',
    'offsets_file': 'offsets_file',
    'db_file': 'db_file',
    'work_dir': 'work_dir',
    'model': 'whisper_model',
    'language': 'jp_language',
    'sample_sec': 'sample_sec',
    'max_attempts': 'max_attempts',
}
_SEARCH_OVERRIDES = ('min_offset_ms', 'max_offset_ms', 'coarse_step_ms', 'fine_step_ms',
                     'max_pair_dist_ms', 'min_text_len')


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c", "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Path to the configuration YAML file (built-in defaults if the default path is absent)."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=LOG_LEVELS,
        help="Set the logging level for console and file output."
    )
    parser.add_argument(
        "--device",
        default=None,  # Default taken from config
        choices=["cuda", "cpu"],
        help="Override the processing device (cuda or cpu) specified in config."
    )


def add_search_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("offset search (defaults taken from config)")
    group.add_argument("--min-offset-ms", type=int, default=None, help="Lowest offset tried.")
    group.add_argument("--max-offset-ms", type=int, default=None, help="Highest offset tried.")
    group.add_argument("--coarse-step-ms", type=int, default=None, help="Coarse grid step.")
    group.add_argument("--fine-step-ms", type=int, default=None, help="Fine grid step.")
    group.add_argument("--max-pair-dist-ms", type=int, default=None,
                       help="Maximum center distance for a segment/cue pair.")
    group.add_argument("--min-text-len", type=int, default=None,
                       help="Minimum normalized length for text to be compared.")


def apply_overrides(config: dict, args: argparse.Namespace) -> dict:
    """Copies any CLI flags that were given over the loaded configuration."""
    for dest, key in _PATH_OVERRIDES.items():
        value = getattr(args, dest, None)
        if value is not None:
            logger.info(f"Overriding {key} from config with CLI argument: {value}")
            config[key] = value
    for key in _SEARCH_OVERRIDES:
        value = getattr(args, key, None)
        if value is not None:
            config.setdefault('search', {})[key] = value
    if getattr(args, 'device', None):
        logger.info(f"Overriding device from config with CLI argument: {args.device}")
        config['device'] = args.device
    return config


def search_params_from_config(config: dict) -> SearchParams:
    return SearchParams.from_mapping(config.get('search') or {}).validate()


def load_configuration(args: argparse.Namespace, log_file: str) -> dict:
    """
    Sets up logging, loads the config and applies CLI overrides. Exits with
    status 1 if the configuration cannot be loaded.
    """
    log_level = parse_log_level(args.log_level)
    # Basic logging first so config loading errors are captured
    setup_logging(log_level=log_level, log_dir='logs', log_file=log_file)

    try:
        config = ConfigLoader().load_or_default(args.config)
    except (ConfigurationError, FileNotFoundError) as e:
        logger.critical(f"Failed to load configuration from {args.config}: {e}", exc_info=True)
        sys.exit(1)

    setup_logging_from_config(config, log_level)
    logger.info("Logging re-configured with settings from config file.")
    return apply_overrides(config, args)


class CLIHandler:
    """Parses arguments and dispatches the SubAlign commands."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            description="SubAlign: estimate the constant timing offset between subtitles and a video's speech.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )
        add_common_arguments(parser)
        subparsers = parser.add_subparsers(dest="command", required=True)

        estimate = subparsers.add_parser(
            "estimate",
            help="Estimate an offset offline from a subtitle file and an existing Whisper JSON.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )
        estimate.add_argument("--sub-file", required=True, help="Subtitle file (.srt or .ass).")
        estimate.add_argument("--asr-json", required=True, help="Whisper JSON output for the sample.")
        estimate.add_argument("--sample-sec", type=float, default=60, help="Seconds of audio the JSON covers.")
        estimate.add_argument("--window-start-sec", type=float, default=0,
                              help="Where the sample starts in the subtitle timeline.")
        estimate.add_argument("--verbose", action="store_true", help="Log the top coarse and fine candidates.")
        add_search_arguments(estimate)

        calibrate = subparsers.add_parser(
            "calibrate",
            help="Transcribe samples of one episode and calibrate its JP subtitle offset.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )
        calibrate.add_argument("--episode", default=None, help="Episode token, e.g. s4e30.")
        calibrate.add_argument("--video-file", default=None, help="Explicit video file.")
        calibrate.add_argument("--sub-file", default=None, help="Explicit subtitle file.")
        calibrate.add_argument("--videos-dir", default=None, help="Override videos_dir.")
        calibrate.add_argument("--subs-dir", dest="jp_subs_dir", default=None, help="Override jp_subs_dir.")
        calibrate.add_argument("--offsets-file", default=None, help="Override offsets_file.")
        calibrate.add_argument("--work-dir", default=None, help="Override work_dir.")
        calibrate.add_argument("--sample-sec", type=float, default=None, help="Override sample_sec.")
        calibrate.add_argument("--window-start-sec", type=float, default=None,
                               help="First window start (default: just before the first cue).")
        calibrate.add_argument("--max-attempts", type=int, default=None, help="Override max_attempts.")
        calibrate.add_argument("--model", default=None, help="Override whisper_model.")
        calibrate.add_argument("--language", default=None, help="Override the spoken language.")
        calibrate.add_argument("--allow-low-confidence", action="store_true",
                               help="Accept (and apply) low-confidence estimates.")
        mode = calibrate.add_mutually_exclusive_group()
        mode.add_argument("--apply", action="store_true", help="Write the offset to the offsets file.")
        mode.add_argument("--dry-run", action="store_true", help="Only report the offset (default).")
        add_search_arguments(calibrate)

        align = subparsers.add_parser(
            "align-episode",
            help="Calibrate both the JP and EN subtitle tracks of one episode.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )
        align.add_argument("--episode", required=True, help="Episode token, e.g. s4e30.")
        align.add_argument("--video-file", default=None, help="Explicit video file.")
        align.add_argument("--jp-sub-file", default=None, help="Explicit JP subtitle file.")
        align.add_argument("--en-sub-file", default=None, help="Explicit EN subtitle file.")
        align.add_argument("--videos-dir", default=None, help="Override videos_dir.")
        align.add_argument("--jp-subs-dir", default=None, help="Override jp_subs_dir.")
        align.add_argument("--en-subs-dir", default=None, help="Override en_subs_dir.")
        align.add_argument("--offsets-file", default=None, help="Override offsets_file.")
        align.add_argument("--work-dir", default=None, help="Override work_dir.")
        align.add_argument("--sample-sec", type=float, default=None, help="Override sample_sec.")
        align.add_argument("--max-attempts", type=int, default=None, help="Override max_attempts.")
        align.add_argument("--model", default=None, help="Override whisper_model.")
        align.add_argument("--write", action="store_true", help="Record the JP offset in the offsets file.")
        align.add_argument("--result-json", default=None, help="Write the result document to this path.")
        add_search_arguments(align)

        return parser

    def _build_aligner(self, config: dict, policy: CalibrationPolicy) -> EpisodeAligner:
        logger.info("Initializing SubAlign components...")
        device = config.get('device', 'cuda')
        audio_extractor = AudioExtractor(ffmpeg_path=config.get('ffmpeg_path'))
        transcriber = WhisperTranscriber(
            model_name=config.get('whisper_model', 'small'),
            device=device,
            fp16=config.get('whisper_fp16', True) if device == 'cuda' else False
        )
        aligner = EpisodeAligner(
            config=config,
            audio_extractor=audio_extractor,
            transcriber=transcriber,
            params=search_params_from_config(config),
            policy=policy,
        )
        logger.info("Components initialized successfully.")
        return aligner

    def _run_estimate(self, args: argparse.Namespace, config: dict) -> None:
        params = search_params_from_config(config)
        sample_ms = int(round(args.sample_sec * 1000))
        window_start_ms = int(round(args.window_start_sec * 1000))

        cues = cues_in_window(load_cues(args.sub_file), window_start_ms, sample_ms)
        segments = [s for s in load_asr_segments(args.asr_json) if s.start_ms < sample_ms]

        searches = []
        result = estimate_offset(segments, cues, params, window_start_sec=args.window_start_sec,
                                 sample_sec=args.sample_sec, search_result_sink=searches)
        logger.info(f"Estimated subtitle offset: {format_offset(result.offset_ms)}")
        logger.info(f"Confidence: {result.confidence} "
                    f"(matched {result.matched_count}/{result.total_asr_segments} ASR segments)")

        if args.verbose and searches:
            logger.info("Top coarse offsets:")
            for c in searches[0].coarse_top:
                logger.info(f"  {c.offset_ms} ms | mean={c.mean_score:.4f} | matched={c.matched_count}")
            logger.info("Top fine offsets:")
            for c in searches[0].fine_top:
                logger.info(f"  {c.offset_ms} ms | mean={c.mean_score:.4f} | matched={c.matched_count}")

    def _policy(self, args: argparse.Namespace, config: dict) -> CalibrationPolicy:
        return CalibrationPolicy(
            sample_sec=config.get('sample_sec', 60),
            max_attempts=int(config.get('max_attempts', 4)),
            allow_low_confidence=getattr(args, 'allow_low_confidence', False),
            window_start_sec=getattr(args, 'window_start_sec', None),
        ).validate()

    def _run_calibrate(self, args: argparse.Namespace, config: dict) -> None:
        if not (args.episode or args.video_file or args.sub_file):
            raise ConfigurationError("Provide --episode, or --video-file and --sub-file.")
        aligner = self._build_aligner(config, self._policy(args, config))
        aligner.calibrate(
            episode=args.episode,
            video_file=args.video_file,
            sub_file=args.sub_file,
            apply=args.apply,
        )

    def _run_align_episode(self, args: argparse.Namespace, config: dict) -> None:
        aligner = self._build_aligner(config, self._policy(args, config))
        aligner.align(
            args.episode,
            video_file=args.video_file,
            jp_sub_file=args.jp_sub_file,
            en_sub_file=args.en_sub_file,
            write=args.write,
            result_json=args.result_json,
        )

    def run(self, argv=None) -> None:
        """Parses arguments, sets up logging, loads config, and runs the chosen command."""
        args = self.parser.parse_args(argv)
        config = load_configuration(args, log_file='subalign_init.log')

        commands = {
            "estimate": self._run_estimate,
            "calibrate": self._run_calibrate,
            "align-episode": self._run_align_episode,
        }
        try:
            commands[args.command](args, config)
            logger.info("SubAlign finished successfully.")
            sys.exit(0)
        except (SubAlignError, FileNotFoundError) as e:
            logger.error(f"A SubAlign error occurred: {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            logger.warning("Process interrupted by user (Ctrl+C). Exiting.")
            sys.exit(1)
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred at the top level: {e}", exc_info=True)
            sys.exit(2)


if __name__ == "__main__":
    CLIHandler().run()
