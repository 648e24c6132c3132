"""
oncely — exactly-once side effects for retried, duplicated and raced requests.

    from oncely import ledger as L     # Attempt ledger (memory / SQLAlchemy)
    from oncely import claim as C      # Idempotent attempt claim protocol
    from oncely import saga as S       # Compensating sagas
    from oncely import gateway as GW   # Checkout provider
    from oncely import graph as G      # nodnod runner
    from oncely import fingerprint     # Request fingerprints
"""

from oncely import graph
from oncely import ledger
from oncely import claim
from oncely import saga
from oncely import gateway
from oncely import checkout
from oncely import fingerprint
from oncely._types import Lazy, Metadata

__version__ = "0.1.0"

__all__ = (
    "graph",
    "ledger",
    "claim",
    "saga",
    "gateway",
    "checkout",
    "fingerprint",
    "Lazy",
    "Metadata",
)
