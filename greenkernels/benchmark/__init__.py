"""Benchmarks for the assembler.

Run with ``python -m greenkernels.benchmark.bench_assembly``; see ``--help``
for the pyperf options.
"""
