"""Exception types for unmangle."""

from typing import Optional


class UnmangleError(Exception):
    """Base class for all unmangle errors."""


class ParseError(UnmangleError):
    """Source text is not valid JavaScript."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.line = line
        self.column = column
        location = f" (line {line}, column {column})" if line is not None else ""
        super().__init__(f"{message}{location}")
        self.reason = message


class OracleError(UnmangleError):
    """The naming oracle was unreachable or kept returning malformed data."""

    def __init__(self, message: str, attempts: int = 0):
        self.attempts = attempts
        super().__init__(message)


class ValidationFailure(UnmangleError):
    """A rewritten program failed a hard validator check."""

    def __init__(self, result):
        self.result = result
        details = "; ".join(f"{e.type}: {e.message}" for e in result.errors[:5])
        super().__init__(f"Rewritten code failed validation: {details}")
