"""Error hierarchy for the sync parser and runtime.

ParseError and DuplicateAction are startup failures. MatchFailure and its
subtypes are soft: the runtime catches them while matching a guard and
moves on to the next rule. ConsequenceViolation is hard and always
escapes Synchronizer.run.
"""
from __future__ import annotations
from typing import Any, Dict, Optional


class SyncError(Exception):
    code = "SYNC_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> Dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class ParseError(SyncError):
    code = "PARSE_ERROR"

    def __init__(self, message: str, line: int, column: int, text: str = ""):
        super().__init__(f"{message} at line {line}, column {column}: {text!r}")
        self.reason = message
        self.line = line
        self.column = column
        self.text = text


class UnknownAction(SyncError):
    code = "UNKNOWN_ACTION"

    def __init__(self, action: str):
        super().__init__(f"Unknown action: {action}")
        self.action = action


class DuplicateAction(SyncError):
    code = "DUPLICATE_ACTION"

    def __init__(self, action: str):
        super().__init__(f"Action registered twice: {action}")
        self.action = action


class CascadeLimitExceeded(SyncError):
    code = "CASCADE_LIMIT"

    def __init__(self, limit: int):
        super().__init__(f"Cascade produced more than {limit} traces")
        self.limit = limit


# ---- soft failures ----

class MatchFailure(SyncError):
    code = "MATCH_FAILURE"


class ActionMismatch(MatchFailure):
    code = "ACTION_MISMATCH"

    def __init__(self, expected: str, actual: str):
        super().__init__(f"Actions do not match: expected {expected}, got {actual}")


class ValueMismatch(MatchFailure):
    code = "VALUE_MISMATCH"

    def __init__(self, where: str, expected: Any, actual: Any):
        super().__init__(f"{where} does not match: expected {expected!r}, got {actual!r}")
        self.expected = expected
        self.actual = actual


class ArityMismatch(MatchFailure):
    code = "ARITY_MISMATCH"

    def __init__(self, where: str, expected: int, actual: Optional[int]):
        got = "a single value" if actual is None else f"{actual} values"
        super().__init__(f"{where}: expected {expected} values, got {got}")


class UnboundVariable(MatchFailure):
    code = "UNBOUND_VARIABLE"

    def __init__(self, name: str):
        super().__init__(f"Unbound argument: {name}")
        self.name = name


# ---- hard failures ----

class ConsequenceViolation(SyncError):
    code = "CONSEQUENCE_VIOLATION"

    def __init__(self, anchor: str, action: str, cause: MatchFailure):
        super().__init__(f"Sync anchored on {anchor} fired but {action} violated its pattern: {cause.message}")
        self.anchor = anchor
        self.action = action
        self.cause = cause
