#!/usr/bin/env python
"""
Build the database x query job graph.

Job order is database-major and is both the scheduling order and the merge
order, so it must stay stable for identical batch lists.
"""

import os
import sys
from collections import namedtuple

import parablat_utilities

Job = namedtuple('Job', 'index db_batch query_batch output_path')


def job_output_path(outdir, index, db_batch, query_batch, out_format):
    # The index alone keeps names unique when batch stems collide
    db_stem = parablat_utilities.sequence_stem(db_batch.path)
    query_stem = parablat_utilities.sequence_stem(query_batch.path)
    return os.path.join(outdir, f"job_{index:05d}.{db_stem}.vs.{query_stem}.{out_format}")


def build_jobs(db_batches, query_batches, outdir, out_format=parablat_utilities.DEFAULT_OUTPUT_FORMAT):
    """
    Pair every database batch with every query batch.

    Args:
        db_batches: Database Batch tuples in partition order
        query_batches: Query Batch tuples in partition order
        outdir: Directory that will hold the per-job BLAT outputs
        out_format: BLAT output format, used as the job output extension

    Returns:
        list: Job tuples with indices 0..len(db_batches)*len(query_batches)-1
    """
    if not db_batches:
        raise parablat_utilities.ValidationError("No database batches to align against")
    if not query_batches:
        raise parablat_utilities.ValidationError("No query batches to align")

    jobs = []
    for db_batch in db_batches:
        for query_batch in query_batches:
            index = len(jobs)
            jobs.append(Job(index, db_batch, query_batch,
                            job_output_path(outdir, index, db_batch, query_batch, out_format)))

    print(f"INFO: {len(db_batches)} database batches x {len(query_batches)} query batches "
          f"= {len(jobs)} BLAT jobs", file=sys.stderr)
    return jobs
