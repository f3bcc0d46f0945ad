"""
Uniform result shape for mutating handlers.

Every write returns either `{"success": "..."}` or `{"error": "..."}`; nothing is allowed
to raise past the handler. Business-rule violations raise `LedgerError` inside the
transaction so the rollback happens before the message is returned.
"""

import functools

from .jsonlog import json_log

INVALID_DATA = "Invalid data provided."


class LedgerError(Exception):
    pass


def ledger_operation(event: str, fallback: str):
    def _wrap(fn):
        @functools.wraps(fn)
        def _run(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except LedgerError as ex:
                return {"error": str(ex)}
            except Exception as ex:
                json_log("error", f"{event}.error", error=str(ex), error_type=type(ex).__name__)
                return {"error": str(ex) or fallback}
        return _run
    return _wrap


def ok(message: str, **extra):
    return {"success": message, **extra}
