import pytest

import parablat_jobs
import parablat_utilities
from parablat_partition import Batch


def batches(stem, n, workdir="/work"):
    return [Batch(f"{workdir}/{stem}.{i}.fa", f"{stem}.fa", i, 10, True) for i in range(1, n + 1)]


def test_cross_product_is_database_major():
    jobs = parablat_jobs.build_jobs(batches("db", 2), batches("q", 3), "/out")

    assert len(jobs) == 6
    assert [j.index for j in jobs] == list(range(6))
    assert [(j.db_batch.index, j.query_batch.index) for j in jobs] == [
        (1, 1), (1, 2), (1, 3), (2, 1), (2, 2), (2, 3)]


@pytest.mark.parametrize("d,q", [(1, 1), (1, 4), (3, 1), (4, 5)])
def test_indices_and_outputs_are_unique(d, q):
    jobs = parablat_jobs.build_jobs(batches("db", d), batches("q", q), "/out")

    assert sorted(j.index for j in jobs) == list(range(d * q))
    assert len({j.output_path for j in jobs}) == d * q


def test_output_names_stay_unique_when_batch_names_collide():
    same = batches("x", 2)
    jobs = parablat_jobs.build_jobs(same, same, "/out")

    assert len({j.output_path for j in jobs}) == 4
    assert jobs[0].output_path == "/out/job_00000.x.1.vs.x.1.psl"


def test_output_extension_follows_format():
    jobs = parablat_jobs.build_jobs(batches("db", 1), batches("q", 1), "/out", "blast8")
    assert jobs[0].output_path.endswith(".blast8")


def test_rebuilding_gives_identical_jobs():
    db, q = batches("db", 3), batches("q", 2)
    assert parablat_jobs.build_jobs(db, q, "/out") == parablat_jobs.build_jobs(db, q, "/out")


def test_empty_side_is_rejected():
    with pytest.raises(parablat_utilities.ValidationError):
        parablat_jobs.build_jobs([], batches("q", 1), "/out")
    with pytest.raises(parablat_utilities.ValidationError):
        parablat_jobs.build_jobs(batches("db", 1), [], "/out")
