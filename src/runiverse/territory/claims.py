"""
Optimistic persistence of resolved claims.

A resolved territory is shown immediately, tagged with a local correlation
id, while the gateway call runs on a worker thread. The session applies the
outcome later, on its own thread:

- success: the provisional entry is replaced by the server's territory
- failure: the provisional entry is removed (a failed merge puts back the
  territory it replaced)

A merge can replace a provisional entry whose own claim is still in flight.
The reconciler remembers that the older claim was superseded: when it
finishes, its answer becomes what the newer claim puts back on failure
instead of being added to the set a second time.

The route that produced a failed claim is not restored.
"""

import dataclasses
import logging
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence

from runiverse.territory.constants import LOCAL_ID_PREFIX
from runiverse.territory.gateway import TerritoryGateway
from runiverse.territory.models import Position, Territory

logger = logging.getLogger(__name__)


def correlation_id() -> str:
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4()}"


def is_local_id(territory_id: str) -> bool:
    return territory_id.startswith(LOCAL_ID_PREFIX)


@dataclasses.dataclass
class PendingClaim:
    correlation_id: str
    future: Future
    replaced: Optional[Territory] = None


@dataclasses.dataclass(frozen=True)
class ClaimOutcome:
    """How a pending claim ended: 'territory' on success, 'error' on failure."""

    correlation_id: str
    territory: Optional[Territory] = None
    replaced: Optional[Territory] = None
    error: Optional[BaseException] = None
    superseded_by: Optional[str] = None

    @property
    def successful(self) -> bool:
        return self.error is None


class ClaimReconciler:
    """
    Submits claims to a gateway and hands back finished outcomes.

    The reconciler never touches the territory set itself; the session
    applies outcomes so that only the session's thread mutates it.
    """

    def __init__(self, gateway: TerritoryGateway, executor: Optional[ThreadPoolExecutor] = None):
        self.gateway = gateway
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="territory-claim")
        self.pending: Dict[str, PendingClaim] = {}
        # correlation id of an in-flight claim -> id of the claim that replaced it
        self.superseded: Dict[str, str] = {}

    def submit(
        self,
        territory: Territory,
        raw_sample_path: Sequence[Position],
        encoded_path: Optional[str] = None,
        replaced: Optional[Territory] = None,
    ) -> PendingClaim:
        """
        Start persisting 'territory'; its id is the correlation id.
        """
        if territory.id in self.pending:
            raise ValueError(f"Claim {territory.id} is already in flight")

        future = self.executor.submit(
            self.gateway.claim,
            list(territory.ring),
            territory.area_m2,
            territory.perimeter_m,
            list(raw_sample_path),
            encoded_path,
        )
        pending = PendingClaim(territory.id, future, replaced)
        self.pending[territory.id] = pending
        if replaced is not None and replaced.id in self.pending:
            self.superseded[replaced.id] = territory.id
        logger.debug(f"Submitted claim {territory.id}")
        return pending

    def collect(self, wait_for_all: bool = False, timeout: Optional[float] = None) -> List[ClaimOutcome]:
        """
        Outcomes of every finished claim, in submission order. With
        'wait_for_all' block until all pending claims finish or 'timeout'.
        """
        if wait_for_all and self.pending:
            wait([p.future for p in self.pending.values()], timeout=timeout)

        outcomes = []
        for key, pending in list(self.pending.items()):
            if not pending.future.done():
                continue
            del self.pending[key]
            error = pending.future.exception()
            territory = None if error is not None else pending.future.result()
            fallback = pending.replaced if error is not None else territory
            successor = self._hand_over(key, fallback, error is None)
            if error is not None:
                logger.error(f"Claim {key} failed: {error}")
            outcomes.append(
                ClaimOutcome(key, territory=territory, replaced=pending.replaced, error=error, superseded_by=successor)
            )
        return outcomes

    def _hand_over(self, key: str, fallback: Optional[Territory], successful: bool) -> Optional[str]:
        """
        Pass a finished claim's result on to the claim that superseded it,
        returning that claim's id.
        """
        successor = self.superseded.pop(key, None)
        if successor is not None and successor in self.pending:
            self.pending[successor].replaced = fallback
            logger.debug(f"Claim {successor} now falls back to the result of {key}")

        if not successful:
            # Claims superseded by this one now fall back to whatever it replaced
            for older, newer in list(self.superseded.items()):
                if newer != key:
                    continue
                if successor is not None:
                    self.superseded[older] = successor
                else:
                    del self.superseded[older]
        return successor

    def shutdown(self, wait_for_pending: bool = True):
        self.executor.shutdown(wait=wait_for_pending)


def apply_outcome(territories: List[Territory], outcome: ClaimOutcome) -> List[Territory]:
    """
    New territory list with 'outcome' applied to the provisional entry whose
    id is the outcome's correlation id.
    """
    index = next((i for i, t in enumerate(territories) if t.id == outcome.correlation_id), None)
    result = list(territories)

    if index is None:
        # Provisional entry already gone: re-hydrated, or replaced by a later merge
        if outcome.successful and outcome.superseded_by is None and all(t.id != outcome.territory.id for t in result):
            result.append(outcome.territory)
        return result

    if outcome.successful:
        result[index] = outcome.territory
    elif outcome.replaced is not None:
        result[index] = outcome.replaced
    else:
        del result[index]
    return result


def provisional(territory: Territory, make_id: Callable[[], str] = correlation_id) -> Territory:
    """A copy of 'territory' tagged as provisional, given a local id unless it has one."""
    territory_id = territory.id if is_local_id(territory.id) else make_id()
    return dataclasses.replace(territory, id=territory_id, provisional=True)
