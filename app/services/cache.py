from abc import ABC, abstractmethod
from typing import Optional, Any, Dict, List

class Cache(ABC):
    """Minimal cache interface to enable swapping backends (memory, none) without changing callers."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Store `value`; returns False when the backend declined to store it."""
        ...

    @abstractmethod
    def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        ...

    @abstractmethod
    def flush(self) -> int:
        ...

    @abstractmethod
    def stats(self) -> Dict[str, int]:
        ...

    def sweep_expired(self) -> int:
        """Proactively drop expired entries. Backends without TTL bookkeeping have nothing to do."""
        return 0
