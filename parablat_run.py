#!/usr/bin/env python
"""
Run BLAT jobs package by package.

EXECUTION MODEL:
    jobs:      [j0, j1, j2, j3, j4]       (database-major order)
    budget=2:  package 0 = [j0, j1]
               package 1 = [j2, j3]       (starts after j0 and j1 have both exited)
               package 2 = [j4]

Each package gets its own ThreadPoolExecutor with one thread per job, and
leaving the executor context joins every worker, so no more than `budget`
BLAT processes run at any moment. A failed job is logged and counted; its
siblings and the later packages still run.
"""

import functools
import subprocess
import sys
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor

import parablat_utilities

# package is filled in by the scheduler once the job has run
WorkerOutcome = namedtuple('WorkerOutcome', 'job success error package', defaults=(None,))

# Lines of BLAT stderr kept in a failure report
STDERR_TAIL_LINES = 5


def blat_command(blat, job, options):
    return [blat, job.db_batch.path, job.query_batch.path] + list(options) + [job.output_path]


def _stderr_tail(stderr):
    if not stderr:
        return ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode(errors='replace')
    lines = [line for line in stderr.strip().splitlines() if line.strip()]
    return " | ".join(lines[-STDERR_TAIL_LINES:])


def execute_job(job, options, blat='blat', timeout=None):
    """
    Run BLAT for one job and report how it went.

    Only the exit status is interpreted; the output file is left for the
    merge step whatever it contains.

    Args:
        job: Job tuple (database batch, query batch, output path)
        options: BLAT options placed between the inputs and the output path
        blat: BLAT executable
        timeout: Seconds before the BLAT process is killed; None waits forever

    Returns:
        WorkerOutcome: success flag plus an ExternalToolError on failure
    """
    cmd = blat_command(blat, job, options)
    try:
        process = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                                 timeout=timeout, check=False)
    except subprocess.TimeoutExpired:
        error = parablat_utilities.ExternalToolError(job.index, f"timed out after {timeout} seconds")
        return WorkerOutcome(job, False, error)
    except OSError as e:
        error = parablat_utilities.ExternalToolError(job.index, f"could not start {blat}: {e}")
        return WorkerOutcome(job, False, error)

    if process.returncode != 0:
        message = _stderr_tail(process.stderr) or "no error output"
        error = parablat_utilities.ExternalToolError(job.index, message, process.returncode)
        return WorkerOutcome(job, False, error)
    return WorkerOutcome(job, True, None)


def make_executor(blat, timeout=None):
    """Bind the BLAT executable and timeout into a (job, options) -> WorkerOutcome callable."""
    return functools.partial(execute_job, blat=blat, timeout=timeout)


def header_option_resolver(options, out_format, single_header):
    """
    Build the per-job option policy.

    With single_header on and a header-bearing format (psl, pslx), only the
    first job of the first package writes the header; every other job gets
    -noHead so the merged file has exactly one header block at the top.

    Returns:
        callable: (package_index, position) -> list of BLAT options
    """
    base = list(options)
    suppress = single_header and parablat_utilities.is_header_format(out_format)
    if parablat_utilities.NO_HEADER_OPTION in base:
        headerless = base
    else:
        headerless = base + [parablat_utilities.NO_HEADER_OPTION]

    def resolve(package_index, position):
        if suppress and (package_index, position) != (0, 0):
            return list(headerless)
        return list(base)
    return resolve


def make_packages(jobs, worker_budget):
    """Slice jobs into consecutive packages of at most worker_budget jobs."""
    parablat_utilities.require_positive_int(worker_budget, "worker budget")
    return [jobs[start:start + worker_budget] for start in range(0, len(jobs), worker_budget)]


def count_packages(outcomes):
    """Number of packages that actually ran, as recorded on the outcomes."""
    return len({outcome.package for outcome in outcomes})


def _run_isolated(execute, job, options):
    # An exception must not escape the worker thread: it would be lost from the outcome list
    try:
        return execute(job, options)
    except Exception as e:
        return WorkerOutcome(job, False, parablat_utilities.ExternalToolError(job.index, repr(e)))


def run_package(package, package_index, option_resolver, execute):
    """Run one package concurrently and wait for every job in it to finish."""
    tasks = [(execute, job, option_resolver(package_index, position))
             for position, job in enumerate(package)]
    with ThreadPoolExecutor(max_workers=len(package)) as executor:
        futures = [executor.submit(_run_isolated, *task) for task in tasks]
    # Leaving the with block waits for every job; results keep package order
    return [future.result()._replace(package=package_index) for future in futures]


def run_packages(jobs, worker_budget, option_resolver, execute):
    """
    Run all jobs with at most worker_budget running at once.

    Packages run strictly one after another; within a package every job runs
    in its own thread. Failures are reported on stderr and counted but never
    stop the run.

    Args:
        jobs: Job tuples in index order
        worker_budget: Maximum number of concurrent BLAT jobs
        option_resolver: (package_index, position) -> BLAT options for that job
        execute: (job, options) -> WorkerOutcome

    Returns:
        tuple: (number of successful jobs, list of WorkerOutcome in job order)
    """
    packages = make_packages(jobs, worker_budget)
    outcomes = []
    success_count = 0
    for package_index, package in enumerate(packages):
        first, last = package[0].index, package[-1].index
        parablat_utilities.print_w_time(
            f"START: package {package_index + 1}/{len(packages)} (jobs {first}-{last}, {len(package)} in parallel)")
        package_outcomes = run_package(package, package_index, option_resolver, execute)
        for outcome in package_outcomes:
            if outcome.success:
                success_count += 1
            else:
                job = outcome.job
                print(f"WARNING: BLAT job {job.index} failed "
                      f"({job.db_batch.path} vs {job.query_batch.path}): {outcome.error}", file=sys.stderr)
        outcomes.extend(package_outcomes)
        parablat_utilities.print_w_time(f"END: package {package_index + 1}/{len(packages)}")

    parablat_utilities.print_w_time(
        f"Ran {len(outcomes)} jobs in {len(packages)} packages: {success_count} succeeded, "
        f"{len(outcomes) - success_count} failed")
    return success_count, outcomes
