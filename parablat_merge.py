#!/usr/bin/env python
"""
Merge per-job BLAT outputs into the final file and remove intermediates.
"""

import gzip
import os
import shutil
import sys

import parablat_utilities


def merge_outputs(jobs, final_output, compress=False):
    """
    Concatenate every job output, byte for byte, in ascending job index.

    Outputs of failed jobs are merged as they are. A job that left no
    output file contributes nothing.

    Args:
        jobs: Job tuples, in any order
        final_output: Path of the merged file
        compress: Write the merged file gzip-compressed

    Returns:
        int: number of job outputs that were found and merged

    Raises:
        OSError: a job output exists but cannot be read, or final_output
            cannot be written; no file is left at final_output
    """
    buffer_size = parablat_utilities.get_adaptive_buffer_size(num_files=2)
    partial_output = final_output + ".part"
    merged = 0
    try:
        if compress:
            fh_out = gzip.open(partial_output, 'wb')
        else:
            fh_out = open(partial_output, 'wb', buffering=buffer_size)
        with fh_out:
            for job in sorted(jobs, key=lambda j: j.index):
                if not os.path.exists(job.output_path):
                    print(f"WARNING: no output from job {job.index} ({job.output_path}), nothing to merge",
                          file=sys.stderr)
                    continue
                with open(job.output_path, 'rb', buffering=buffer_size) as fh_in:
                    shutil.copyfileobj(fh_in, fh_out, buffer_size)
                merged += 1
    except OSError:
        if os.path.exists(partial_output):
            os.remove(partial_output)
        raise
    os.replace(partial_output, final_output)
    return merged


def cleanup_intermediates(batches, jobs, workdir):
    """
    Delete batch files, job outputs and the working directory.

    Batches that are the original input files (owned=False) are never deleted.
    """
    for job in jobs:
        try:
            os.remove(job.output_path)
        except OSError:
            pass
    for batch in batches:
        if not batch.owned:
            continue
        try:
            os.remove(batch.path)
        except OSError:
            pass
    try:
        os.rmdir(workdir)
    except OSError:
        pass
