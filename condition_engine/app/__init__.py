"""
Condition engine application package.

This package holds the rule evaluation engine. It is intentionally small
and focused:

- app.rules.paths: Property path normalization and resolution.
- app.rules.coercion: Comparison and stringification rules.
- app.rules.engine: Rule evaluation and ALL/ANY aggregation.

Design notes:
- Keep the package import side-effects minimal; nothing here performs IO.
  The only outputs are the returned verdict and the caller's log sink.
- Use the shared/ utilities for logging, metrics, configuration and errors.
- Treat evaluations as stateless; the path normalization cache is the
  only shared state and is lock-guarded.
"""
