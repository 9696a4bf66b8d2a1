#!/usr/bin/env python3
import argparse
import dataclasses
import json
import logging
import os
import sys
from typing import Dict, Optional

from dotenv import load_dotenv

from text_corrector import __version__
from text_corrector.core.config import CorrectorConfig
from text_corrector.core.service import CorrectionService, build_provider
from text_corrector.errors import ChunkProcessingError, ParseError
from text_corrector.providers.config import ProviderConfig
from text_corrector.types import CorrectionResult, ReplaceRule


def parse_replace_rule(value: str) -> ReplaceRule:
    """Parse a PATTERN=REPLACEMENT command line value."""
    pattern, separator, replacement = value.partition("=")
    if not separator or not pattern:
        raise argparse.ArgumentTypeError(f"Expected PATTERN=REPLACEMENT, got: {value}")
    return ReplaceRule(pattern=pattern, replacement=replacement)


def create_arg_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="text-corrector",
        description="Correct spelling and grammar in text using the Baidu or DeepSeek correction APIs",
        formatter_class=lambda prog: argparse.HelpFormatter(prog, max_help_position=52),
    )

    parser.add_argument("input_file", nargs="?", help="Text file to correct. Reads standard input when omitted.")

    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")

    parser.add_argument(
        "--log_level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], help="Logging level. Default: INFO"
    )

    # Provider selection
    provider_group = parser.add_argument_group("Provider")
    provider_group.add_argument(
        "--provider",
        choices=["baidu", "deepseek"],
        help="Correction provider. Can also use TEXT_CORRECTOR_PROVIDER env var. Default: deepseek",
    )
    provider_group.add_argument("--max_chunk_size", type=int, help="Maximum characters sent per provider call. Default: 3000")

    # API Credentials
    api_group = parser.add_argument_group("API Credentials")
    api_group.add_argument("--baidu_api_key", help="Baidu API key. Can also use BAIDU_API_KEY env var.")
    api_group.add_argument("--baidu_secret_key", help="Baidu secret key. Can also use BAIDU_SECRET_KEY env var.")
    api_group.add_argument("--deepseek_api_key", help="DeepSeek API key. Can also use DEEPSEEK_API_KEY env var.")

    # Output options
    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument("--json", action="store_true", help="Print the full result as JSON instead of the corrected text")
    output_group.add_argument(
        "--safe", action="store_true", help="Print the input unchanged when the provider response cannot be parsed"
    )
    output_group.add_argument(
        "--replace",
        metavar="PATTERN=REPLACEMENT",
        type=parse_replace_rule,
        action="append",
        default=[],
        help="Replacement applied after correction; PATTERN is a regular expression or literal text. Repeatable.",
    )

    return parser


def parse_args(parser: argparse.ArgumentParser, args_list: list[str] | None = None) -> argparse.Namespace:
    """Parse and process command line arguments."""
    args = parser.parse_args(args_list)
    if args.max_chunk_size is not None and args.max_chunk_size < 1:
        parser.error("--max_chunk_size must be a positive integer")
    return args


def get_config_from_env() -> Dict[str, Optional[str]]:
    """Load configuration from environment variables."""
    load_dotenv()
    return {
        "baidu_api_key": os.getenv("BAIDU_API_KEY"),
        "baidu_secret_key": os.getenv("BAIDU_SECRET_KEY"),
        "deepseek_api_key": os.getenv("DEEPSEEK_API_KEY"),
    }


def setup_logging(log_level: str) -> logging.Logger:
    """Configure logging with consistent format."""
    logger = logging.getLogger("text_corrector")
    log_level_enum = getattr(logging, log_level.upper())
    logger.setLevel(log_level_enum)

    if not logger.handlers:
        # stdout carries the corrected text, so log lines go to stderr
        handler = logging.StreamHandler(sys.stderr)
        formatter = logging.Formatter(fmt="%(asctime)s.%(msecs)03d - %(levelname)s - %(module)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def create_configs(args: argparse.Namespace, env_config: Dict[str, Optional[str]]) -> tuple[ProviderConfig, CorrectorConfig]:
    """Create configuration objects from arguments and environment variables."""
    provider_config = dataclasses.replace(
        ProviderConfig.from_env(),
        baidu_api_key=args.baidu_api_key or env_config.get("baidu_api_key"),
        baidu_secret_key=args.baidu_secret_key or env_config.get("baidu_secret_key"),
        deepseek_api_key=args.deepseek_api_key or env_config.get("deepseek_api_key"),
    )

    corrector_config = CorrectorConfig.from_env()
    overrides = {}
    if args.provider:
        overrides["provider"] = args.provider
    if args.max_chunk_size:
        # Text longer than one chunk must go through the chunker
        overrides["max_chunk_size"] = args.max_chunk_size
        overrides["large_text_threshold"] = args.max_chunk_size
    if overrides:
        corrector_config = dataclasses.replace(corrector_config, **overrides)

    return provider_config, corrector_config


def read_input(args: argparse.Namespace, logger: logging.Logger) -> str:
    """Read the text to correct from the input file or standard input."""
    if args.input_file is None:
        logger.debug("Reading text from standard input")
        return sys.stdin.read()

    if not os.path.exists(args.input_file):
        logger.error(f"Input file not found: {args.input_file}")
        sys.exit(1)
    with open(args.input_file, "r", encoding="utf-8") as f:
        return f.read()


def run_correction(service: CorrectionService, text: str, safe: bool) -> CorrectionResult:
    """Correct text of any length, optionally keeping the input when a response is unparseable."""
    if not safe:
        return service.correct_large_text(text)
    if len(text) <= service.config.large_text_threshold:
        return service.correct_safe(text)

    try:
        return service.correct_large_text(text)
    except ChunkProcessingError as e:
        if not isinstance(e.__cause__, ParseError):
            raise
        service.logger.warning(f"Provider response could not be parsed, returning text unchanged: {e}")
        return CorrectionResult.unchanged(text)


def main(args_list: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = create_arg_parser()
    args = parse_args(parser, args_list)

    # Set up logging first
    logger = setup_logging(args.log_level)

    env_config = get_config_from_env()
    provider_config, corrector_config = create_configs(args, env_config)
    provider_config.validate_environment(logger)

    text = read_input(args, logger)

    try:
        provider = build_provider(corrector_config.provider, provider_config, logger=logger)
        with CorrectionService(provider, config=corrector_config, logger=logger) as service:
            result = run_correction(service, text, args.safe)
            replacements = None
            if args.replace:
                replacements = service.apply_replace_rules(result.corrected_text, args.replace)
    except Exception as e:
        logger.error(f"Correction failed: {str(e)}")
        sys.exit(1)

    corrected_text = replacements.corrected_text if replacements else result.corrected_text
    logger.info(f"Applied {len(result.corrections)} corrections")

    if args.json:
        output = result.to_dict()
        output["correctedText"] = corrected_text
        if replacements:
            output["replacements"] = [correction.to_dict() for correction in replacements.corrections]
        sys.stdout.write(json.dumps(output, ensure_ascii=False, indent=2) + "\n")
    else:
        sys.stdout.write(corrected_text)


if __name__ == "__main__":
    main()
