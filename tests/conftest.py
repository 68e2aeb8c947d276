"""Pytest fixtures: FASTA writers and a stand-in BLAT executable.

The fake BLAT takes the real command line shape
(``blat database query [options] output``) and writes one
``query<TAB>target`` line per record pair, preceded by a psl-style header
unless ``-noHead`` is given. Set ``FAKE_BLAT_FAIL`` to a substring of a batch
file name to make jobs on that batch exit non-zero, and ``FAKE_BLAT_SLEEP``
to delay every job.
"""

import os
import stat
import sys
import textwrap

import pytest

PSL_HEADER = "psLayout version 3\n\nmatch\tmismatch\trep.match\tN's\tQ gap count\n" + "-" * 40 + "\n"

FAKE_BLAT = textwrap.dedent('''\
    #!{python}
    import os
    import sys
    import time

    HEADER = {header!r}

    args = sys.argv[1:]
    database, query, output = args[0], args[1], args[-1]
    options = args[2:-1]

    delay = float(os.environ.get("FAKE_BLAT_SLEEP", "0"))
    if delay:
        time.sleep(delay)

    fail_on = os.environ.get("FAKE_BLAT_FAIL")
    if fail_on and (fail_on in os.path.basename(database) or fail_on in os.path.basename(query)):
        sys.stderr.write("fake blat: cannot align " + database + "\\n")
        sys.exit(255)


    def names(path):
        with open(path) as fh:
            return [line[1:].split()[0] for line in fh if line.startswith(">")]


    out_format = "psl"
    for option in options:
        if option.startswith("-out="):
            out_format = option.split("=", 1)[1]

    with open(output, "w") as fh:
        if out_format in ("psl", "pslx") and "-noHead" not in options:
            fh.write(HEADER)
        for target in names(database):
            for name in names(query):
                fh.write(name + "\\t" + target + "\\n")
''')


def write_fasta_file(path, names, seq="ACGTACGTAC"):
    with open(path, "w") as fh:
        for name in names:
            fh.write(f">{name} some description\n{seq[:5]}\n{seq[5:]}\n")
    return str(path)


@pytest.fixture
def make_fasta(tmp_path):
    """Factory writing a FASTA file with records <prefix>1..<prefix>n."""
    def _make(filename, n, prefix=None):
        prefix = prefix or os.path.splitext(filename)[0] + "_"
        return write_fasta_file(tmp_path / filename, [f"{prefix}{i}" for i in range(1, n + 1)])
    return _make


@pytest.fixture
def fake_blat(tmp_path, monkeypatch):
    """Path to an executable fake BLAT script."""
    monkeypatch.delenv("FAKE_BLAT_FAIL", raising=False)
    monkeypatch.delenv("FAKE_BLAT_SLEEP", raising=False)
    path = tmp_path / "fake_blat"
    path.write_text(FAKE_BLAT.format(python=sys.executable, header=PSL_HEADER))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def workdir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return str(path)
