#!/usr/bin/env python
"""
parablat: run BLAT over a database x query grid of FASTA batches in parallel.

Workflow:
  1) Split the database and the query FASTA into batches.
  2) Pair every database batch with every query batch (database-major order).
  3) Run the jobs in packages of --workers concurrent BLAT processes.
  4) Concatenate the job outputs in job order into <outdir>/<name>.<format>.
  5) Remove batch and job files unless --keep is given.
"""

import argparse
import multiprocessing
import os
import shlex
import shutil
import sys
import tempfile
from collections import namedtuple

import parablat_jobs
import parablat_merge
import parablat_partition
import parablat_run
import parablat_utilities

RunSummary = namedtuple('RunSummary', 'attempted succeeded failed packages output_path')

# Exit status when the merge succeeded but at least one BLAT job failed
EXIT_PARTIAL = 3


def find_blat(explicit=None):
    """
    Resolve the BLAT executable: --blat, then $PARABLAT_BLAT, then PATH.

    Raises:
        ValidationError: no usable executable was found
    """
    for candidate in (explicit, os.environ.get('PARABLAT_BLAT'), 'blat'):
        if not candidate:
            continue
        resolved = shutil.which(candidate)
        if resolved:
            return resolved
        if candidate is explicit:
            raise parablat_utilities.ValidationError(f"BLAT executable not found or not executable: {explicit}")
        if candidate != 'blat':
            print(f"WARNING: PARABLAT_BLAT={candidate} is not an executable, looking for blat on PATH",
                  file=sys.stderr)
    raise parablat_utilities.ValidationError(
        "BLAT executable not found: use --blat, set PARABLAT_BLAT or add blat to PATH")


def build_blat_options(option_string, out_format=None):
    """Split the --blat_options string and append -out=<format> when one is requested."""
    options = shlex.split(option_string) if option_string else []
    if out_format:
        options.append(f"-out={out_format}")
    return options


def final_output_path(outdir, basename, out_format, compress=False):
    path = os.path.join(outdir, f"{basename}.{out_format}")
    if compress:
        path += ".gz"
    return path


def run_pipeline(database, query, outdir, blat='blat', blat_options=(), db_batches=1, query_batches=1,
                 workers=1, single_header=False, keep_intermediates=False, basename='parablat',
                 compress=False, timeout=None, execute=None):
    """
    Partition, align, merge and clean up.

    All parameters are validated before any file is written. Partition and
    merge errors propagate; BLAT job failures are counted in the summary.

    Args:
        database: Database FASTA path
        query: Query FASTA path
        outdir: Output directory (created if missing)
        blat: BLAT executable
        blat_options: BLAT options shared by every job
        db_batches: Number of database batches
        query_batches: Number of query batches
        workers: Maximum number of concurrent BLAT jobs
        single_header: Keep only the first job's header for psl/pslx output
        keep_intermediates: Leave batch and job files in the working directory
        basename: Final output file name without extension
        compress: gzip the final output
        timeout: Per-job time limit in seconds, None for no limit
        execute: (job, options) -> WorkerOutcome; defaults to running BLAT

    Returns:
        RunSummary
    """
    parablat_utilities.require_positive_int(db_batches, "database batch count")
    parablat_utilities.require_positive_int(query_batches, "query batch count")
    parablat_utilities.require_positive_int(workers, "worker budget")
    blat_options = list(blat_options)
    out_format = parablat_utilities.output_format_from_options(blat_options)
    parablat_utilities.check_fasta(database)
    parablat_utilities.check_fasta(query)
    if execute is None:
        execute = parablat_run.make_executor(blat, timeout)

    os.makedirs(outdir, exist_ok=True)
    workdir = tempfile.mkdtemp(prefix=f"{basename}.tmp.", dir=outdir)
    print(f"INFO: Working directory: {workdir}", file=sys.stderr)
    try:
        return _run_in_workdir(database, query, outdir, workdir, blat_options, out_format, db_batches,
                               query_batches, workers, single_header, keep_intermediates, basename,
                               compress, execute)
    except (parablat_utilities.ValidationError, OSError):
        if keep_intermediates:
            print(f"INFO: Keeping intermediate files in {workdir}", file=sys.stderr)
        else:
            shutil.rmtree(workdir, ignore_errors=True)
        raise


def _run_in_workdir(database, query, outdir, workdir, blat_options, out_format, db_batches, query_batches,
                    workers, single_header, keep_intermediates, basename, compress, execute):
    parablat_utilities.print_w_time(f"START: Splitting database into {db_batches} batches")
    db_batch_list = parablat_partition.partition(database, db_batches, workdir, prefix='db')
    parablat_utilities.print_w_time(f"START: Splitting query into {query_batches} batches")
    query_batch_list = parablat_partition.partition(query, query_batches, workdir, prefix='query')
    parablat_utilities.print_w_time("END: Splitting inputs")

    jobs = parablat_jobs.build_jobs(db_batch_list, query_batch_list, workdir, out_format)
    resolver = parablat_run.header_option_resolver(blat_options, out_format, single_header)

    parablat_utilities.print_w_time(f"START: Running {len(jobs)} BLAT jobs (up to {workers} simultaneously)")
    succeeded, outcomes = parablat_run.run_packages(jobs, workers, resolver, execute)
    packages = parablat_run.count_packages(outcomes)
    parablat_utilities.print_w_time("END: All BLAT jobs processed")

    output_path = final_output_path(outdir, basename, out_format, compress)
    parablat_utilities.print_w_time(f"START: Merging {len(jobs)} job outputs")
    parablat_merge.merge_outputs(jobs, output_path, compress=compress)
    parablat_utilities.print_w_time(f"END: Merged into {output_path}")

    if keep_intermediates:
        print(f"INFO: Keeping intermediate files in {workdir}", file=sys.stderr)
    else:
        parablat_utilities.print_w_time("START: Cleaning up batch and job files")
        parablat_merge.cleanup_intermediates(db_batch_list + query_batch_list, jobs, workdir)
        parablat_utilities.print_w_time("END: Cleaned up batch and job files")

    return RunSummary(len(outcomes), succeeded, len(outcomes) - succeeded, packages, output_path)


def print_configuration(args, blat, blat_options):
    """Print configuration summary."""
    print('Database fasta                       : ' + args.database)
    print('Query fasta                          : ' + args.query)
    print('Output directory                     : ' + args.outdir)
    print('Output name                          : ' + args.basename)
    print('BLAT executable                      : ' + blat)
    print('BLAT options                         : ' + (' '.join(blat_options) if blat_options else '(defaults)'))
    print('Database batches                     : ' + str(args.db_batches))
    print('Query batches                        : ' + str(args.query_batches))
    print('Parallel BLAT jobs                   : ' + str(args.workers))
    print('Single header                        : ' + str(args.single_header))
    print('Per-job timeout                      : ' + (f"{args.timeout:g} s" if args.timeout else 'None'))
    print('Compress output                      : ' + str(args.compress))
    print('Keep intermediate files              : ' + str(args.keep))
    print("===================================================================")


def print_summary(summary):
    print(f"Jobs attempted                       : {summary.attempted}")
    print(f"Jobs succeeded                       : {summary.succeeded}")
    print(f"Jobs failed                          : {summary.failed}")
    print(f"Packages processed                   : {summary.packages}")
    print(f"Merged output                        : {summary.output_path}")


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description='Run BLAT in parallel over batches of a database and a query FASTA',
                                     usage='%(prog)s [-h] [-v,--version]',
                                     formatter_class=argparse.ArgumentDefaultsHelpFormatter)

    parser.add_argument('-d', '--database', action='store', dest='database', required=True,
                        metavar='', help='Path to database fasta file (plain or .gz)')

    parser.add_argument('-q', '--query', action='store', dest='query', required=True,
                        metavar='', help='Path to query fasta file (plain or .gz)')

    parser.add_argument('-o', '--outdir', action='store', dest='outdir', required=True, metavar='',
                        help='Output directory path')

    parser.add_argument('-n', '--name', action='store', dest='basename', default='parablat', metavar='',
                        help='Base name of the merged output file; the output format is appended as extension')

    parser.add_argument('--db_batches', action='store', type=parablat_utilities.positive_int, default=1,
                        dest='db_batches', metavar='',
                        help='Number of batches to split the database into (1 = use the database file as is)')

    parser.add_argument('--query_batches', action='store', type=parablat_utilities.positive_int, default=1,
                        dest='query_batches', metavar='',
                        help='Number of batches to split the query into (1 = use the query file as is)')

    parser.add_argument('-p', '--workers', action='store', type=parablat_utilities.positive_int,
                        default=multiprocessing.cpu_count(), dest='workers', metavar='',
                        help='''Maximum number of BLAT jobs running at the same time.
                                Jobs run in packages of this size; a package starts only when the
                                previous one has finished.''')

    parser.add_argument('--out', action='store', type=str, choices=parablat_utilities.BLAT_OUTPUT_FORMATS,
                        default=None, dest='out_format', metavar='',
                        help='BLAT output format (-out=); overrides any -out= in --blat_options. Default: psl')

    parser.add_argument('-b', '--blat_options', action='store', type=str, default='', dest='blat_options',
                        metavar='', help='''Extra options passed to every BLAT job, quoted as one string.
                                            Example: --blat_options "-t=dna -q=rna -minIdentity=90"''')

    parser.add_argument('-s', '--single_header', action='store_true', dest='single_header',
                        help='For psl/pslx output, write the header only once at the top of the merged file')

    parser.add_argument('-k', '--keep', action='store_true', dest='keep',
                        help='Keep batch and per-job output files in the working directory')

    parser.add_argument('-z', '--compress', action='store_true', dest='compress',
                        help='Write the merged output gzip-compressed')

    parser.add_argument('--timeout', action='store', type=parablat_utilities.positive_float, default=None,
                        dest='timeout', metavar='',
                        help='Kill a BLAT job after this many seconds and count it as failed (default: no limit)')

    parser.add_argument('--blat', action='store', type=str, default=None, dest='blat', metavar='',
                        help='BLAT executable (default: $PARABLAT_BLAT, then blat on PATH)')

    parser.add_argument('-v', '--version', action='version', version=f'%(prog)s {parablat_utilities.__version__}')

    return parser.parse_args(argv)


def main(argv=None):
    """Main function to orchestrate the parallel BLAT workflow."""
    args = parse_arguments(argv)

    try:
        blat = find_blat(args.blat)
        blat_options = build_blat_options(args.blat_options, args.out_format)
        parablat_utilities.output_format_from_options(blat_options)
    except parablat_utilities.ValidationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print_configuration(args, blat, blat_options)

    try:
        summary = run_pipeline(args.database, args.query, args.outdir, blat=blat, blat_options=blat_options,
                               db_batches=args.db_batches, query_batches=args.query_batches,
                               workers=args.workers, single_header=args.single_header,
                               keep_intermediates=args.keep, basename=args.basename,
                               compress=args.compress, timeout=args.timeout)
    except parablat_utilities.ValidationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print_summary(summary)
    if summary.failed:
        print(f"WARNING: {summary.failed} of {summary.attempted} BLAT jobs failed; "
              f"their results are missing or partial in {summary.output_path}", file=sys.stderr)
        sys.exit(EXIT_PARTIAL)


if __name__ == "__main__":
    main()
