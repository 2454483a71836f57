# -*- coding: utf-8 -*-
import argparse # For command-line argument processing
import logging # For logging functionality
import multiprocessing # For parallel processing
import sys
from typing import List, Optional

from resizeit import __version__
from resizeit.batch import BatchSummary, run_batch
from resizeit.codecs import CodecRegistry
from resizeit.discovery import discover
from resizeit.settings import Settings, load_settings

# Read from the current working directory, once, before any file is processed.
CONFIGURATION_FILE_NAME = "Configuration.xml"

logger = logging.getLogger()


def configure_logging(verbose: bool = False):
    """Routes all log records to stderr with timestamp, level and process name."""
    log_formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(processName)s: %(message)s', datefmt='%Y-%m-%d %H:%M:%S')
    log_handler = logging.StreamHandler()
    log_handler.setFormatter(log_formatter)

    # Remove any existing handlers to prevent duplicate log output.
    if logger.hasHandlers():
        logger.handlers.clear()
    logger.addHandler(log_handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=f"Batch Image Resizer (v{__version__})\n"
                    f"Resizes every image given directly or found in the given folders.\n"
                    f"Settings are read from '{CONFIGURATION_FILE_NAME}' in the current directory.\n"
                    f"Put '--' before paths that start with '-'.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument("paths", nargs="*", metavar="PATH",
                        help="Image files and/or folders containing images.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable verbose (DEBUG level) logging for detailed output.")
    return parser.parse_args(argv)


def display_settings(settings: Settings):
    """Prints the effective settings to the console for user review."""
    print("\n" + "=" * 30 + " Settings " + "=" * 30)
    if settings.keep_aspect_ratio:
        print(f"Resize: keep aspect ratio, ratio {settings.ratio}")
    else:
        print(f"Resize: fixed size {settings.fixed_width}x{settings.fixed_height}px")
    print(f"Output folder: {settings.output_folder_name or '(same as source)'}")
    print(f"Output file suffix: '{settings.output_file_suffix}'")
    if settings.codec is None:
        print("Output format: same as source")
    else:
        params = ", ".join(f"{p.name}={p.value}" for p in settings.encoder_parameters) or "none"
        print(f"Output format: {settings.codec.mime_type} (.{settings.codec.extension}), encoder parameters: {params}")
    print(f"Copy metadata: {settings.copy_metadata}")
    print(f"Existing outputs: {'skip' if settings.skip_if_exists else 'overwrite'}")
    print(f"Recursive directory search: {settings.recursive_search}")
    print(f"Max degree of parallelism: {settings.max_parallelism}")
    print(f"Drawing: {settings.compositing_quality.name} compositing, {settings.interpolation_mode.name} interpolation, "
          f"{settings.pixel_offset_mode.name} pixel offset, {settings.smoothing_mode.name} smoothing")
    print("=" * 70)


def print_summary(summary: BatchSummary):
    """Prints a summary of the batch processing results to the console."""
    print(f"\n--- Processing Summary ---")
    print(f"Resized images: {summary.resized}")
    print(f"Skipped (output already exists): {summary.skipped_existing}")
    print(f"Skipped (unsupported extension): {summary.skipped_extension}")
    print(f"Errors encountered during processing: {summary.failed}")

    if summary.errors:
        print("\n[Files with Processing Errors]")
        for filepath, errmsg in summary.errors[:20]: # Show first 20 errors
            print(f"  - '{filepath}': {errmsg}")
        if len(summary.errors) > 20:
            print(f"  ... and {len(summary.errors) - 20} more error(s). Check logs for full details.")
    print("\n--- All tasks completed ---")


def main(argv: Optional[List[str]] = None):
    """
    Loads the configuration, expands the arguments into files and resizes them.
    Exits with 0 once the batch has run, whatever happened to individual files,
    and with 2 when setup fails before or while starting the workers.
    """
    args = parse_arguments(argv)
    configure_logging(args.verbose)
    try:
        logger.info(f"===== Image Resizer Started (v{__version__}) =====")
        registry = CodecRegistry.from_pillow()
        settings = load_settings(CONFIGURATION_FILE_NAME, registry)
        display_settings(settings)

        files = discover(args.paths, settings.recursive_search)
        logger.info(f"Found {len(files)} file(s) from {len(args.paths)} argument(s).")

        summary = run_batch(files, settings, registry.supported_extensions())
        print_summary(summary)
        logger.info("===== Image Resizer Finished =====")
    except Exception as e:
        logger.critical(f"An unhandled critical exception occurred: {e}", exc_info=True)
        print(f"\n(!) Critical Error: {e}. Check logs for details.")
        sys.exit(2)
    sys.exit(0)


if __name__ == "__main__":
    multiprocessing.freeze_support() # Important for PyInstaller compatibility on Windows
    main()
