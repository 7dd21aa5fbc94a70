"""
Transfer pipeline components for copying DHIS2 data values between instances.

This package contains all components of the pipeline:

Modules:
    client: Authenticated DHIS2 Web API client (catalog, export, import)
    processor: Unit-of-work state machine (fetch → parse → batch → submit)
    runner: Orchestrator (validation, discovery, bounded concurrency, summary)
    periods: Date and DHIS2 period helpers

Subpackages:
    extractors: Extraction strategies (CSV, JSON, staged CSV, SQL view)
    transformers: Record normalization and batching
    loaders: dataValueSets import with report salvage

Architecture:
    Data flows strictly downstream:

    1. Runner - validates config, discovers org units, builds work units
    2. Processor - per unit: extract, normalize, batch, submit
    3. Runner - folds unit outcomes into the run summary

    A failure inside one unit of work is recorded on its outcome and never
    aborts the run.

Usage:
    from transfer.client import DHIS2Client
    from transfer.runner import TransferRunner

Example:
    async with DHIS2Client(source_url, user, password) as source, \\
               DHIS2Client(dest_url, user, password) as destination:
        runner = TransferRunner(source, destination, config)
        summary = await runner.run()

    print(f"Imported {summary.total_imported} values")
"""

__all__ = [
    "DHIS2Client",
    "TransferRunner",
    "UnitProcessor",
    "RecordExtractor",
    "RecordNormalizer",
    "DataValueLoader",
]
