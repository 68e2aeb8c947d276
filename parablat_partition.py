#!/usr/bin/env python
"""
Split a FASTA collection into ordered batches of near-equal record count.

The batch size is fixed once for the whole collection as round(total / count)
(round half to even); the last batch absorbs whatever remains.
"""

import os
import sys
from collections import namedtuple

from Bio.SeqIO.FastaIO import SimpleFastaParser

import parablat_utilities

# owned=False means the batch is the source file itself and must never be deleted
Batch = namedtuple('Batch', 'path source index record_count owned')


def count_records(collection):
    """Count FASTA records in a (possibly gzip-compressed) file without loading it."""
    buffer_size = parablat_utilities.get_adaptive_buffer_size(num_files=1)
    total = 0
    with parablat_utilities.open_text(collection, buffer_size) as fh:
        for _ in SimpleFastaParser(fh):
            total += 1
    return total


def compute_batch_size(total_records, batch_count):
    # round() is round-half-to-even; a zero size would never roll over
    return max(1, round(total_records / batch_count))


def batch_path(workdir, collection, index, prefix=None):
    # The prefix keeps batches of two inputs with the same file name apart
    stem = parablat_utilities.sequence_stem(collection)
    if prefix:
        stem = f"{prefix}.{stem}"
    return os.path.join(workdir, f"{stem}.{index}.{parablat_utilities.BATCH_EXTENSION}")


def partition(collection, batch_count, workdir, prefix=None):
    """
    Split a FASTA collection into at most batch_count ordered batches.

    Records keep their original order: the first records go to batch 1.
    Every batch but the last holds exactly round(total / batch_count)
    records, so when rounding goes up fewer than batch_count batches can
    come back.

    Args:
        collection (str): Path to the FASTA file (plain or .gz)
        batch_count (int): Number of batches requested (>= 1)
        workdir (str): Directory that receives the batch files
        prefix (str): Role put in front of the batch file names, e.g. 'db' or 'query'

    Returns:
        list: Batch tuples in creation order

    Raises:
        ValidationError: batch_count is not a positive integer, or the
            collection holds no FASTA records
        OSError: the collection cannot be opened or read, or a batch file
            cannot be written
    """
    parablat_utilities.require_positive_int(batch_count, "batch count")
    parablat_utilities.check_fasta(collection)
    total = count_records(collection)
    if total == 0:
        raise parablat_utilities.ValidationError(f"{collection}: no sequence records found")

    # BLAT cannot read gzip input, so a compressed source is always rewritten
    if batch_count == 1 and not collection.endswith(".gz"):
        return [Batch(collection, collection, 1, total, False)]

    batch_size = compute_batch_size(total, batch_count)
    buffer_size = parablat_utilities.get_adaptive_buffer_size(num_files=2)

    batches = []
    current_path = None
    current_count = 0
    fh_out = None
    try:
        with parablat_utilities.open_text(collection, buffer_size) as fh_in:
            for title, seq in SimpleFastaParser(fh_in):
                if fh_out is None or (current_count >= batch_size and len(batches) < batch_count):
                    if fh_out is not None:
                        fh_out.close()
                    index = len(batches) + 1
                    current_path = batch_path(workdir, collection, index, prefix)
                    fh_out = open(current_path, 'w', buffering=buffer_size)
                    batches.append(Batch(current_path, collection, index, 0, True))
                    current_count = 0
                fh_out.write(f">{title}\n{seq}\n")
                current_count += 1
                batches[-1] = batches[-1]._replace(record_count=current_count)
    finally:
        if fh_out is not None:
            fh_out.close()

    parablat_utilities.print_w_time(
        f"Split {os.path.basename(collection)} ({total:,} records) into {len(batches)} batches of {batch_size:,}")
    if len(batches) < batch_count:
        print(f"WARNING: {collection}: requested {batch_count} batches, {total:,} records "
              f"only fill {len(batches)} at {batch_size:,} records per batch", file=sys.stderr)
    return batches
