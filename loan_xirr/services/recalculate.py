"""Recalculate and store a loan's XIRR when its transactions change.

``XirrRecalculator`` is handed its collaborators explicitly: a transaction
source, a rate sink and the solver settings. For each trigger it

1. reads the loan id from the changed record's image,
2. reads the loan's row version,
3. fetches every transaction of the loan,
4. converts the amounts to floats once and runs the solver,
5. writes the rate back, conditional on the version from step 2.

Solver and persistence errors are logged and re-raised unchanged; deciding
whether to retry or abort belongs to the caller.
"""

from __future__ import annotations

import logging

from ..config import AppConfig, get_config
from ..errors import ConcurrencyConflictError, ConvergenceError, XirrError
from .capabilities import RateSink, TransactionSource, TriggerContext
from .xirr import as_cash_flows, newton_xirr

log = logging.getLogger(__name__)


class XirrRecalculator:
    def __init__(
        self,
        source: TransactionSource,
        sink: RateSink,
        config: AppConfig | None = None,
    ) -> None:
        self.source = source
        self.sink = sink
        self.config = config or get_config()

    def handle(self, context: TriggerContext) -> float | None:
        """Recalculate the loan referenced by ``context``.

        Returns None without doing anything when the changed record carries
        no loan id.
        """
        loan_id = context.loan_id
        if loan_id is None:
            log.debug("Trigger without loan id ignored", extra={"kind": context.kind})
            return None
        return self.recalculate(loan_id)

    def recalculate(self, loan_id: int) -> float:
        version = self.sink.read_version(loan_id)
        records = self.source.fetch_cash_flows(loan_id)
        log.info(
            "Calculating XIRR",
            extra={"loan_id": loan_id, "version": version, "cash_flows": len(records)},
        )
        try:
            series = as_cash_flows(records)
            result = newton_xirr(
                series,
                guess=self.config.XIRR_GUESS,
                tolerance=self.config.XIRR_TOLERANCE,
                max_iterations=self.config.XIRR_MAX_ITERATIONS,
            )
        except ConvergenceError as exc:
            log.warning(
                "XIRR did not converge: %s",
                exc,
                extra={"loan_id": loan_id, "iterations": exc.iterations, "error": type(exc).__name__},
            )
            raise
        except XirrError as exc:
            log.warning("XIRR input rejected: %s", exc, extra={"loan_id": loan_id})
            raise

        try:
            self.sink.write_rate(loan_id, result.rate, version)
        except ConcurrencyConflictError:
            log.warning(
                "Loan changed during XIRR calculation",
                extra={"loan_id": loan_id, "version": version},
            )
            raise
        except XirrError:
            log.exception("Error during loan update", extra={"loan_id": loan_id})
            raise

        log.info(
            "XIRR stored",
            extra={"loan_id": loan_id, "xirr": result.rate, "iterations": result.iterations},
        )
        return result.rate
