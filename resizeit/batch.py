# -*- coding: utf-8 -*-
import logging
import multiprocessing
import os
from dataclasses import dataclass, field
from typing import FrozenSet, List, Sequence, Tuple

from tqdm import tqdm

from .discovery import CandidateFile
from .resize import FAILED, RESIZED, SKIPPED_EXISTING, SKIPPED_EXTENSION, ResizeResult, process_file
from .settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class BatchSummary:
    resized: int = 0
    skipped_existing: int = 0
    skipped_extension: int = 0
    failed: int = 0
    errors: List[Tuple[str, str]] = field(default_factory=list)  # (source path, message)

    @property
    def total(self) -> int:
        return self.resized + self.skipped_existing + self.skipped_extension + self.failed

    def add(self, result: ResizeResult):
        if result.status == RESIZED:
            self.resized += 1
        elif result.status == SKIPPED_EXISTING:
            self.skipped_existing += 1
        elif result.status == SKIPPED_EXTENSION:
            self.skipped_extension += 1
        else:
            self.failed += 1
            self.errors.append((result.source, result.message or "Unknown error"))


# This function must be defined at the top level of a module to be picklable by multiprocessing.
def static_process_image_worker(task: Tuple[str, Settings, FrozenSet[str]]) -> ResizeResult:
    source_path, settings, supported_extensions = task
    try:
        return process_file(source_path, settings, supported_extensions)
    except Exception as e:
        logger.critical(f"Worker failed for '{source_path}': {e}", exc_info=True)
        return ResizeResult(FAILED, source_path, message=f"Critical error in worker: {e}")


def resolve_worker_count(max_parallelism: int, file_count: int) -> int:
    """
    Number of worker processes for `file_count` files.
    -1 uses every CPU; a positive value is a hard cap. Zero and values below -1
    are treated like -1.
    """
    if max_parallelism == 0 or max_parallelism < -1:
        logger.warning(f"MaxDegreeOfParallelism={max_parallelism} is not valid. Using the CPU count instead.")
        max_parallelism = -1
    if max_parallelism == -1:
        available_cpus = os.cpu_count()
        if not available_cpus:
            logger.warning("Could not determine number of CPU cores. Defaulting to 1 worker.")
            available_cpus = 1
        max_parallelism = available_cpus
    return max(1, min(max_parallelism, file_count))


def run_batch(
    files: Sequence[CandidateFile],
    settings: Settings,
    supported_extensions: FrozenSet[str],
    show_progress: bool = True,
) -> BatchSummary:
    """
    Runs the resize worker over every candidate file, at most
    `settings.max_parallelism` at a time. A failing file never stops the others;
    results are collected in whatever order the workers finish.
    """
    summary = BatchSummary()
    if not files:
        logger.warning("(!) No files found to process.")
        return summary

    tasks = [(candidate.path, settings, supported_extensions) for candidate in files]
    num_processes = resolve_worker_count(settings.max_parallelism, len(tasks))
    logger.info(f"Processing {len(tasks)} file(s) using {num_processes} worker process(es).")

    with tqdm(total=len(tasks), desc="Resizing images", unit="file", ncols=100, leave=True, disable=not show_progress) as pbar:
        if num_processes == 1:
            for result in map(static_process_image_worker, tasks):
                _record(summary, result, pbar)
        else:
            with multiprocessing.Pool(processes=num_processes) as pool:
                for result in pool.imap_unordered(static_process_image_worker, tasks):
                    _record(summary, result, pbar)

    logger.info(
        f"Batch processing complete. Resized: {summary.resized}, Errors: {summary.failed}, "
        f"Skipped (existing output): {summary.skipped_existing}, Skipped (unsupported extension): {summary.skipped_extension}"
    )
    return summary


def _record(summary: BatchSummary, result: ResizeResult, pbar: tqdm):
    summary.add(result)
    if result.status == FAILED:
        # Write through tqdm to keep the progress bar intact
        tqdm.write(f" x Error processing '{os.path.basename(result.source)}': {result.message}")
    pbar.update(1)
