"""
Ordered schema scripts, applied forward-only by `core.migrate`.

Files are named `NNNN_description.sql`; the numeric prefix is the version.
"""
