#!/usr/bin/env python
"""Setup script for parablat package."""

from setuptools import setup
import os
import re

# Read version from parablat_utilities.py (single source of truth)
# The version is defined as __version__ = "X.Y.Z" in parablat_utilities.py
version = "0.3.1"  # Default fallback version
with open("parablat_utilities.py", "r") as f:
    for line in f:
        match = re.search(r"__version__\s*=\s*['\"]([\d]+\.[\d]+\.[\d]+)['\"]", line)
        if match:
            version = match.group(1)
            break

# Read long description from README
long_description = ""
if os.path.exists("README.md"):
    with open("README.md", "r", encoding="utf-8") as f:
        long_description = f.read()

setup(
    name="parablat",
    version=version,
    description="Parallel BLAT - split database and query FASTA into batches, align every pair, merge the results",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="parablat Contributors",
    py_modules=[
        "parablat",
        "parablat_jobs",
        "parablat_merge",
        "parablat_partition",
        "parablat_run",
        "parablat_utilities",
    ],
    scripts=[
        "parablat.py",
    ],
    install_requires=[
        "biopython",      # For FASTA parsing when splitting inputs into batches (parablat_partition.py)
    ],
    extras_require={
        "optional": [
            "psutil",     # For adaptive buffer sizing (8-16MB) when splitting and merging large files
        ],
        "test": [
            "pytest",
        ],
    },
    # External Command-Line Tools (must be installed separately, not via pip):
    #
    # REQUIRED TOOLS:
    # - BLAT
    #   * Used in: parablat_run.py (blat database query [options] output)
    #   * Located via --blat, $PARABLAT_BLAT or PATH
    #   * Install: conda install -c bioconda blat
    python_requires=">=3.7",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Programming Language :: Python :: 3",
    ],
)
