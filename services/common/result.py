"""
Outcome object for the variant-test admin operations. Callers branch on the
outcome instead of catching exceptions; the route layer turns error codes
into HTTP statuses.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar('T')


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    A payload on success, or a message plus a code such as TEST_NOT_FOUND.

        outcome = service.get_test(test_id)
        if outcome:
            return jsonify(outcome.data)
        return jsonify({'error': outcome.error}), 404
    """

    ok: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> 'Result[T]':
        return cls(True, data=data, metadata=metadata or {})

    @classmethod
    def failure(cls, error: str, code: Optional[str] = None,
                metadata: Optional[Dict[str, Any]] = None) -> 'Result[T]':
        return cls(False, error=error, error_code=code, metadata=metadata or {})

    @property
    def is_success(self) -> bool:
        return self.ok

    @property
    def is_failure(self) -> bool:
        return not self.ok

    def unwrap(self) -> T:
        """Payload of a successful outcome; ValueError on a failure"""
        if not self.ok:
            raise ValueError(f"Cannot unwrap a failure result: {self.error}")
        return self.data

    def unwrap_or(self, default: T) -> T:
        return self.data if self.ok else default

    def __bool__(self) -> bool:
        return self.ok

    def __repr__(self) -> str:
        if self.ok:
            return f"Result.success(data={self.data!r})"
        return f"Result.failure(error={self.error!r}, code={self.error_code!r})"
