import time
from typing import Any, List, Optional, Sequence, Tuple

from loguru import logger

from image_job_client.exceptions import CascadeExhausted
from image_job_client.kinds import JobKindAdapter, RegionEditAdapter
from image_job_client.models import JobResult, Strategy
from image_job_client.orchestrator import TaskOrchestrator


class StrategyCascade:
    """Tries alternative request encodings of one operation until the service accepts one.

    Each strategy runs through the full submit and poll cycle; an error from
    either step moves on to the next strategy. The first success is returned
    tagged with the strategy's name.
    """

    def __init__(self, orchestrator: TaskOrchestrator):
        self.orchestrator = orchestrator
        self.logger = logger

    async def run(
        self,
        params: Any,
        adapter: Optional[JobKindAdapter] = None,
        strategies: Optional[Sequence[Strategy]] = None,
    ) -> JobResult:
        adapter = adapter or self.orchestrator.adapter_for(RegionEditAdapter.kind)
        if strategies is None:
            strategies = getattr(adapter, "strategies", ())
        if not strategies:
            raise ValueError("At least one strategy is required")

        started_at = time.monotonic()
        errors: List[Tuple[str, Exception]] = []

        for strategy in strategies:
            self.logger.info(f"Trying strategy: {strategy.name}")
            try:
                result = await self.orchestrator.run_request(
                    adapter,
                    strategy.build(params),
                    params,
                    model_label=f"{adapter.model_label}-{strategy.name}",
                    started_at=started_at,
                )
            except Exception as error:
                self.logger.warning(f"Strategy {strategy.name} failed: {error}")
                errors.append((strategy.name, error))
                continue

            self.logger.info(f"Strategy {strategy.name} succeeded, task id: {result.metadata.job_id}")
            result.metadata.strategy = strategy.name
            return result

        last_error = errors[-1][1]
        self.logger.error(f"All {len(errors)} strategies failed")
        raise CascadeExhausted(len(errors), last_error, errors) from last_error
