"""
=============================================================
Error recovery and tracing for the database execution layer.
=============================================================

Modules:
    error_handler: Retry with exponential backoff for transient failures
    query_tracer: Span recording around Database operations

Example:
    >>> from logs.error_handler import ErrorRecovery
    >>> from logs.query_tracer import SpanRecorder, TracedDatabase
    >>>
    >>> traced = TracedDatabase(db, SpanRecorder())
    >>> traced.execute("DELETE FROM ref_game WHERE game_code = $1", ["x1"])
"""

__version__ = "1.0.0"
__all__ = ['error_handler', 'query_tracer']

# Note: no eager imports; query_tracer depends on utils.database_utils,
# which itself imports logs.error_handler. Import modules directly:
#   from logs.error_handler import ErrorRecovery
#   from logs.query_tracer import SpanRecorder, TracedDatabase
