#!/usr/bin/env python
"""
parablat Utilities Module

This module contains shared utility functions, error kinds and constants used
across the parablat scripts.
"""

import argparse
import gzip
import os
import sys
from datetime import datetime

# Version number - single source of truth for all parablat scripts
__version__ = "0.3.1"

# Real-time output when stdout is not a TTY (e.g. batch jobs)
if hasattr(sys.stdout, 'reconfigure'):
    sys.stdout.reconfigure(line_buffering=True)
    sys.stderr.reconfigure(line_buffering=True)

# Try to import psutil for adaptive buffer sizing (optional dependency)
try:
    import psutil
    PSUTIL_AVAILABLE = True
except ImportError:
    PSUTIL_AVAILABLE = False

# BLAT output formats (-out=<format>) and the ones that carry a header block
BLAT_OUTPUT_FORMATS = ("psl", "pslx", "axt", "maf", "sim4", "wublast", "blast", "blast8", "blast9")
HEADER_FORMATS = ("psl", "pslx")
DEFAULT_OUTPUT_FORMAT = "psl"
NO_HEADER_OPTION = "-noHead"

BATCH_EXTENSION = "fa"


class ValidationError(ValueError):
    """Bad run parameters (batch counts, worker budget, empty inputs)."""


class ExternalToolError(RuntimeError):
    """A single BLAT invocation failed.

    Carried inside a failed WorkerOutcome rather than raised, so one job
    never aborts its siblings.
    """

    def __init__(self, job_index, message, returncode=None):
        super().__init__(message)
        self.job_index = job_index
        self.returncode = returncode

    def __str__(self):
        if self.returncode is None:
            return f"job {self.job_index}: {self.args[0]}"
        return f"job {self.job_index} (exit status {self.returncode}): {self.args[0]}"


def print_w_time(message):
    # Print to stderr so logs appear in scheduler error files and are visible during execution
    print(f"[{datetime.now().strftime('%d-%m-%Y %H:%M:%S')}] {message}", file=sys.stderr)


def positive_int(x):
    try:
        value = int(x)
    except (TypeError, ValueError):
        raise argparse.ArgumentTypeError("%r is not an integer" % (x,))
    if value <= 0:
        raise argparse.ArgumentTypeError("%r must be >= 1" % (x,))
    return value


def positive_float(x):
    try:
        value = float(x)
    except (TypeError, ValueError):
        raise argparse.ArgumentTypeError("%r is not a number" % (x,))
    if value <= 0.0:
        raise argparse.ArgumentTypeError("%r must be > 0" % (x,))
    return value


def require_positive_int(value, name):
    """
    Validate a count handed to the core by a caller other than argparse.

    Booleans are rejected even though they are ints in Python.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise ValidationError(f"{name} must be >= 1, got {value}")
    return value


def open_text(path, buffer_size=None):
    """Open a plain or gzip-compressed text file for reading."""
    if path.endswith(".gz"):
        return gzip.open(path, "rt")
    if buffer_size:
        return open(path, "r", buffering=buffer_size)
    return open(path, "r")


def check_fasta(path):
    """
    Check that a sequence file opens and starts with a FASTA header.

    Args:
        path: Path to a (possibly gzip-compressed) FASTA file

    Raises:
        OSError: if the file cannot be opened or read
        ValidationError: if the file is empty or is not FASTA
    """
    with open_text(path) as fh:
        for line in fh:
            stripped = line.strip()
            if not stripped:
                continue
            if stripped.startswith(">"):
                return
            raise ValidationError(f"{path}: not a FASTA file (starts with {stripped[:1]!r})")
    raise ValidationError(f"{path}: no sequence records found")


def sequence_stem(path):
    """File name without directory, compression suffix and sequence extension."""
    name = os.path.basename(path)
    if name.endswith(".gz"):
        name = name[:-3]
    root, ext = os.path.splitext(name)
    if ext.lower() in (".fa", ".fasta", ".fna", ".fas", ".fsa"):
        return root
    return name


def output_format_from_options(options):
    """
    Return the BLAT output format selected by an option list.

    The last -out=<format> wins, as it does on the BLAT command line.
    """
    out_format = DEFAULT_OUTPUT_FORMAT
    for option in options:
        if option.startswith("-out="):
            out_format = option.split("=", 1)[1]
    if out_format not in BLAT_OUTPUT_FORMATS:
        raise ValidationError(f"Unknown BLAT output format: {out_format}")
    return out_format


def is_header_format(out_format):
    return out_format in HEADER_FORMATS


def get_adaptive_buffer_size(num_files=2):
    """
    Calculate adaptive buffer size for file I/O operations.

    Uses 0.5% of available system memory per file, clamped between 8MB and
    16MB. Falls back to 8MB when psutil is not installed.

    Args:
        num_files (int): Number of file handles that will use this buffer size.
                        Total memory = buffer_size x num_files.

    Returns:
        int: Buffer size in bytes (between 8MB and 16MB per file)
    """
    if PSUTIL_AVAILABLE:
        try:
            available_mb = psutil.virtual_memory().available / (1024 * 1024)
            calculated_mb = int(available_mb * 0.005)
            buffer_mb = max(8, min(16, calculated_mb))
            return buffer_mb * 1024 * 1024
        except (AttributeError, OSError):
            return 8 * 1024 * 1024
    return 8 * 1024 * 1024
