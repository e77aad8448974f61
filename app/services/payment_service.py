from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from decimal import Decimal

from app.config import settings
from app.core.errors import PaymentError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentResult:
    approved: bool
    reference: str = ''
    reason: str = ''


class PaymentAuthorizer:
    def authorize(self, card_token: str, amount: Decimal) -> PaymentResult:
        raise NotImplementedError

    def void(self, reference: str) -> None:
        raise NotImplementedError


class SimulatedPaymentAuthorizer(PaymentAuthorizer):
    """Stands in for a gateway: waits a little, then approves unless told not to.

    Tokens starting with ``decline`` are refused, which is enough to drive the
    failure paths from tests and demos.
    """

    DECLINE_PREFIX = 'decline'

    def __init__(self, delay_seconds: float | None = None) -> None:
        self.delay_seconds = settings.payment_simulated_delay_seconds if delay_seconds is None else delay_seconds

    def authorize(self, card_token: str, amount: Decimal) -> PaymentResult:
        if self.delay_seconds > 0:
            time.sleep(self.delay_seconds)
        token = (card_token or '').strip()
        if not token:
            return PaymentResult(approved=False, reason='missing_card_token')
        if token.lower().startswith(self.DECLINE_PREFIX):
            return PaymentResult(approved=False, reason='declined')
        if Decimal(amount) <= 0:
            return PaymentResult(approved=False, reason='invalid_amount')
        return PaymentResult(approved=True, reference=f'sim_{uuid.uuid4().hex[:20]}')

    def void(self, reference: str) -> None:
        logger.info('payment_voided', extra={'reference': reference})


_authorizer: PaymentAuthorizer = SimulatedPaymentAuthorizer()
_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def set_payment_authorizer(authorizer: PaymentAuthorizer) -> None:
    global _authorizer
    _authorizer = authorizer


def get_payment_authorizer() -> PaymentAuthorizer:
    return _authorizer


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=max(1, int(settings.payment_max_workers)),
                thread_name_prefix='payment',
            )
        return _executor


def shutdown_payment_executor() -> None:
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=False, cancel_futures=True)
            _executor = None


def _void_late_approval(authorizer: PaymentAuthorizer, future: Future) -> None:
    if future.cancelled() or future.exception() is not None:
        return
    result = future.result()
    if result.approved and result.reference:
        void_payment(result.reference, authorizer=authorizer)


def authorize_payment(
    card_token: str,
    amount: Decimal,
    *,
    authorizer: PaymentAuthorizer | None = None,
    timeout: float | None = None,
) -> PaymentResult:
    active = authorizer or _authorizer
    wait = settings.payment_timeout_seconds if timeout is None else timeout
    future = _get_executor().submit(active.authorize, card_token, amount)
    try:
        result = future.result(timeout=wait)
    except FutureTimeoutError as exc:
        # The call keeps running; release whatever it eventually approves.
        if not future.cancel():
            future.add_done_callback(lambda done: _void_late_approval(active, done))
        logger.warning('payment_authorization_timeout', extra={'timeout_seconds': wait})
        raise PaymentError('payment authorization timed out', reason='timeout') from exc
    except Exception as exc:
        logger.exception('payment_authorization_error')
        raise PaymentError('payment authorization failed', reason='provider_error') from exc

    if not result.approved:
        logger.info('payment_declined', extra={'reason': result.reason})
        raise PaymentError('payment authorization declined', reason=result.reason or 'declined')
    return result


def void_payment(reference: str, *, authorizer: PaymentAuthorizer | None = None) -> None:
    active = authorizer or _authorizer
    try:
        active.void(reference)
    except Exception:
        logger.exception('payment_void_failed', extra={'reference': reference})
