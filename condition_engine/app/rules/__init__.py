"""
Rules engine package.

Defines the rule model and evaluation engine used to check structured
reference data against declarative comparison rules. Rules are combined
under an ALL/ANY policy with a required-rules overlay, returning a
pass/fail decision and a line-oriented trace for diagnostics.

Modules of interest:
- models: Data classes for Rule, settings, operators and results.
- paths: Property path normalization and resolution.
- coercion: Explicit coercion table used by the comparisons.
- engine: Evaluation algorithm and aggregation.

The engine is pure and in-memory; rule storage and trace display belong to
the caller.
"""
