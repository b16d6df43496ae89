"""
Shared, cross-cutting code for the API.

`core/` should contain small building blocks that feature packages use
(DB wiring, settings, logging, migrations). Keep feature-specific SQL and
business logic in the corresponding feature package (e.g. `quotes/`).
"""
