"""
Result Pattern Implementation
Lets lenient read paths report per-item success or failure without raising
"""

from typing import TypeVar, Generic, Optional, Any, Dict
from dataclasses import dataclass, field

T = TypeVar('T')


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Either a value or an error message with a machine-readable code.

    Per-offer EPC computations return these so the question-EPC average can
    exclude failed offers instead of counting them as a zero EPC.

    Examples:
        result = epc_service.offer_epc_result(offer_id)
        if result.is_success:
            epcs.append(result.data.epc)
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.success

    @property
    def is_failure(self) -> bool:
        return not self.success

    @property
    def code(self) -> Optional[str]:
        return self.error_code

    def unwrap(self) -> T:
        """
        Raises:
            ValueError: If called on a failure result
        """
        if self.is_failure:
            raise ValueError(f"Cannot unwrap a failure result ({self.error_code}): {self.error}")
        return self.data

    def unwrap_or(self, default: T) -> T:
        return self.data if self.is_success else default

    def __bool__(self) -> bool:
        return self.is_success


def Success(data: T, metadata: Optional[Dict[str, Any]] = None) -> Result[T]:
    return Result(success=True, data=data, metadata=metadata or {})


def Failure(error: str, code: Optional[str] = None,
            metadata: Optional[Dict[str, Any]] = None) -> Result:
    return Result(success=False, error=error, error_code=code, metadata=metadata or {})
