from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base for every error the core raises on purpose.

    Carries a stable ``kind`` plus contextual data so the HTTP layer can build a
    structured payload without parsing messages.
    """

    kind = 'domain_error'

    def __init__(self, message: str = '', **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {'kind': self.kind, 'message': self.message, **self.context}


class ValidationError(DomainError, ValueError):
    kind = 'validation'


class ConflictError(DomainError, ValueError):
    kind = 'conflict'

    def __init__(self, message: str = '', *, conflicts: list[dict[str, Any]] | None = None, **context: Any) -> None:
        super().__init__(message, conflicts=list(conflicts or []), **context)

    @property
    def conflicts(self) -> list[dict[str, Any]]:
        return self.context['conflicts']


class AuthorizationError(DomainError, PermissionError):
    kind = 'authorization'

    def __init__(self, message: str = 'Forbidden', **context: Any) -> None:
        super().__init__(message, **context)


class InvalidStateError(DomainError, ValueError):
    kind = 'invalid_state'


class EmptyCartError(DomainError, ValueError):
    kind = 'empty_cart'

    def __init__(self, message: str = 'cart is empty', **context: Any) -> None:
        super().__init__(message, **context)


class NotFoundError(DomainError, LookupError):
    kind = 'not_found'


class PaymentError(DomainError, RuntimeError):
    kind = 'payment_failed'

    def __init__(self, message: str = 'payment authorization failed', *, reason: str = 'declined', **context: Any) -> None:
        super().__init__(message, reason=reason, **context)

    @property
    def reason(self) -> str:
        return self.context['reason']


class TransientStoreError(DomainError, RuntimeError):
    kind = 'transient_store'
