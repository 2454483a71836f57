# -*- coding: utf-8 -*-
import logging
import os
from dataclasses import dataclass
from typing import Iterable, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CandidateFile:
    path: str  # absolute path of the source file
    directory: str  # absolute path of the directory containing it


def _candidate(path: str) -> CandidateFile:
    abs_path = os.path.abspath(path)
    return CandidateFile(path=abs_path, directory=os.path.dirname(abs_path))


def _raise_walk_error(error: OSError):
    raise error


def _files_in_directory(directory: str, recursive: bool) -> List[CandidateFile]:
    candidates = []
    if recursive:
        for root, dirnames, filenames in os.walk(directory, onerror=_raise_walk_error):
            dirnames.sort()
            for filename in sorted(filenames):
                candidates.append(_candidate(os.path.join(root, filename)))
    else:
        with os.scandir(directory) as entries:
            for entry in sorted(entries, key=lambda e: e.name):
                if entry.is_file():
                    candidates.append(_candidate(entry.path))
    return candidates


def discover(arguments: Iterable[str], recursive: bool) -> List[CandidateFile]:
    """
    Expands command-line arguments into a flat list of candidate files.

    Files are taken as-is. Directories contribute their files (top level only,
    or the whole tree when `recursive`). Anything else is ignored. Results of
    overlapping arguments are concatenated without de-duplication.
    """
    candidates: List[CandidateFile] = []
    for argument in arguments:
        if os.path.isfile(argument):
            candidates.append(_candidate(argument))
        elif os.path.isdir(argument):
            found = _files_in_directory(os.path.abspath(argument), recursive)
            logger.debug(f"Found {len(found)} file(s) in '{argument}' (recursive: {recursive}).")
            candidates.extend(found)
        else:
            logger.debug(f"Ignoring '{argument}': not an existing file or directory.")
    return candidates
