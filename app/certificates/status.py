"""
BRy AR status vocabulary and the certificate request state machine.

    created -> pending -> in_validation -> approved -> pending_authentication -> issued -> revoked
                              |    ^
                              v    |
                       validation_rejected

Any non-terminal state may move to `rejected`. `issued` only leaves to
`revoked`; `revoked` and `rejected` are absorbing.
"""
import logging
from typing import Dict, FrozenSet, Iterable, Optional, Union

from app.models import CertificateStatus

logger = logging.getLogger(__name__)

S = CertificateStatus

StatusValue = Union[CertificateStatus, str]

# Raw BRy token (lowercased) -> canonical status
BRY_STATUS_MAP: Dict[str, CertificateStatus] = {
    "created": S.CREATED,
    "received": S.PENDING,
    "recieved": S.PENDING,  # misspelling seen in BRy payloads
    "pending": S.PENDING,
    "in_validation": S.IN_VALIDATION,
    "approved": S.APPROVED,
    "pending_authentication": S.PENDING_AUTHENTICATION,
    "validation_rejected": S.VALIDATION_REJECTED,
    "rejected": S.REJECTED,
    "issued": S.ISSUED,
    "revoked": S.REVOKED,
}


def require_every_status(covered: Iterable[CertificateStatus], what: str) -> None:
    """Fail at import when a CertificateStatus has no entry in `covered`."""
    missing = set(CertificateStatus) - set(covered)
    if missing:
        raise RuntimeError(f"No {what} for status(es): {sorted(s.value for s in missing)}")


require_every_status(BRY_STATUS_MAP.values(), "BRy token")

MAIN_CHAIN = (
    S.CREATED,
    S.PENDING,
    S.IN_VALIDATION,
    S.APPROVED,
    S.PENDING_AUTHENTICATION,
    S.ISSUED,
)

TERMINAL_STATUSES: FrozenSet[CertificateStatus] = frozenset({S.ISSUED, S.REVOKED, S.REJECTED})


def _build_transitions() -> Dict[CertificateStatus, FrozenSet[CertificateStatus]]:
    edges: Dict[CertificateStatus, set] = {status: set() for status in CertificateStatus}

    # Forward along the main chain, skipping lost intermediate deliveries
    for i, status in enumerate(MAIN_CHAIN):
        edges[status].update(MAIN_CHAIN[i + 1:])

    # Correction loop
    edges[S.IN_VALIDATION].add(S.VALIDATION_REJECTED)
    edges[S.VALIDATION_REJECTED].update({S.PENDING, S.IN_VALIDATION, S.APPROVED})

    # Abandonment
    for status in CertificateStatus:
        if status not in TERMINAL_STATUSES:
            edges[status].add(S.REJECTED)

    edges[S.ISSUED] = {S.REVOKED}
    edges[S.REVOKED] = set()
    edges[S.REJECTED] = set()

    return {status: frozenset(targets) for status, targets in edges.items()}


ALLOWED_TRANSITIONS: Dict[CertificateStatus, FrozenSet[CertificateStatus]] = _build_transitions()


def map_status(raw: Optional[str]) -> Optional[StatusValue]:
    """
    Translate a BRy status token into a CertificateStatus.

    Matching is case-insensitive. Unknown tokens come back unchanged so a
    new upstream status is stored as-is rather than rejected.
    """
    if raw is None:
        return None
    mapped = BRY_STATUS_MAP.get(raw.strip().lower())
    if mapped is None:
        logger.warning(f"Unmapped BRy status token: {raw!r}")
        return raw
    return mapped


def coerce_status(value: Optional[str]) -> Optional[StatusValue]:
    """Stored status string -> CertificateStatus when it is one, else the raw value."""
    if value is None:
        return None
    try:
        return CertificateStatus(value)
    except ValueError:
        return value


def status_value(status: StatusValue) -> str:
    return status.value if isinstance(status, CertificateStatus) else status


def is_terminal(status: Optional[StatusValue]) -> bool:
    return isinstance(status, CertificateStatus) and status in TERMINAL_STATUSES


def is_allowed_transition(current: Optional[StatusValue], target: StatusValue) -> bool:
    """
    Whether a request in `current` may move to `target`.

    A self-transition is always allowed so that a redelivered webhook is
    re-applied. Statuses outside the enum are only constrained by
    terminal states.
    """
    current = coerce_status(current) if isinstance(current, str) else current
    target = coerce_status(target) if isinstance(target, str) else target

    if current is None or current == target:
        return True
    if not isinstance(current, CertificateStatus):
        return True
    if not isinstance(target, CertificateStatus):
        return not is_terminal(current)
    return target in ALLOWED_TRANSITIONS[current]
