"""Shipwright monitor — terminal rendering of runs and ledger history.

Modules
-------
renderer
    ``ReportRenderer`` turns ``PipelineReport``, ``JobGraph`` and ledger
    entries into Rich renderables.
"""
