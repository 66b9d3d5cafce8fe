"""
errors.py — Error taxonomy shared by the client side of Fireline.

Every failure that can reach the user is one of these. MapSession catches
them at the operation boundary and turns each into exactly one
notification; none of them is fatal to the running process.

  ValidationError  — identity required but missing, or a bad control value
  ParseError       — malformed GeoJSON upload
  TransportError   — the region service could not be reached
  ServerError      — the region service answered with a non-success or
                     unusable response
  DeleteBatchError — one or more deletes in a batch failed (reported once)
"""

from typing import Optional


class FirelineError(Exception):
    """Base class. `message` is safe to show to the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(FirelineError):
    pass


class ParseError(FirelineError):
    pass


class TransportError(FirelineError):
    pass


class ServerError(FirelineError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DeleteBatchError(FirelineError):
    """Aggregate of the failed deletes in one batch, keyed by region id."""

    def __init__(self, failures: dict[str, FirelineError]) -> None:
        self.failures = failures
        noun = "region" if len(failures) == 1 else "regions"
        super().__init__(f"Failed to delete {len(failures)} {noun}")
