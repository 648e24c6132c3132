"""
Compensating sagas for multi-row creation.

    from oncely import saga as S

    chain = (
        S.from_async(create_org, on_error=to_error, compensate=delete_org)
        .then(lambda org: S.from_async(lambda: grant_admin(org), on_error=to_error, compensate=revoke))
    )
    match await S.run_chain(chain):
        case Error(S.SagaError(rollback_complete=False)):
            ...  # some rows survived; alert

Not durable: a crash mid-saga leaves whatever was already written.
"""

from oncely.saga._types import Undo, SagaStep, Then, SagaResult, SagaError
from oncely.saga._step import step, from_async
from oncely.saga._run import run, run_chain, run_step, run_compensators

__all__ = (
    "Undo",
    "SagaStep",
    "Then",
    "SagaResult",
    "SagaError",
    "step",
    "from_async",
    "run",
    "run_chain",
    "run_step",
    "run_compensators",
)
