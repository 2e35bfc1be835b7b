"""
Phase runner.

A phase is an ordered list of stages. Stages run strictly one after another;
the first failure aborts the rest of the phase and nothing already done is
rolled back. Disposal is the exception: it is best-effort, runs every stage
and reports all failures together.

Phase Order:
    1. Infrastructure - provision compute and network
    2. Configuration  - render configs, PKI and kit into the local build area
    3. Distribution   - push kit, rendered data and keys to hosts
    (Disposal runs only when asked for explicitly.)
"""

import logging
from enum import Enum
from typing import Sequence, TYPE_CHECKING

from .exceptions import DisposalError, MissingVariableError, StageError

if TYPE_CHECKING:
    from .model import Model
    from .protocols import Stage

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    INFRASTRUCTURE = "infrastructure"
    CONFIGURATION = "configuration"
    DISTRIBUTION = "distribution"
    DISPOSAL = "disposal"

    def stages_of(self, model: "Model") -> Sequence["Stage"]:
        return getattr(model, self.value)


PIPELINE = (Phase.INFRASTRUCTURE, Phase.CONFIGURATION, Phase.DISTRIBUTION)


def stage_name(stage: "Stage") -> str:
    return getattr(stage, "name", None) or type(stage).__name__


class PhaseRunner:
    """Executes the stages of one phase, or the disposal stages."""

    def run(self, phase: Phase, stages: Sequence["Stage"], model: "Model") -> None:
        """
        Run ``stages`` in declaration order, stopping at the first failure.

        Raises:
            MissingVariableError: Propagated unchanged (fatal configuration)
            StageError: Wrapping the first stage failure
        """
        logger.info(f"[{phase.value}] {len(stages)} stage(s)")
        for index, stage in enumerate(stages):
            name = stage_name(stage)
            logger.info(f"[{phase.value}] #{index} {name}")
            try:
                stage.execute(model)
            except MissingVariableError:
                raise
            except Exception as e:
                logger.error(f"[{phase.value}] #{index} {name} failed: {e}")
                raise StageError(phase.value, name, index, e) from e
        logger.info(f"✓ Phase {phase.value} complete")

    def run_pipeline(self, model: "Model", phases: Sequence[Phase] = PIPELINE) -> None:
        for phase in phases:
            if phase is Phase.DISPOSAL:
                self.dispose(phase.stages_of(model), model)
            else:
                self.run(phase, phase.stages_of(model), model)

    def dispose(self, stages: Sequence["Stage"], model: "Model") -> None:
        """
        Run every disposal stage, even after failures.

        Raises:
            DisposalError: Listing every failed stage, after all have run
        """
        failures = []
        logger.info(f"[disposal] {len(stages)} stage(s)")
        for index, stage in enumerate(stages):
            name = stage_name(stage)
            logger.info(f"[disposal] #{index} {name}")
            try:
                stage.execute(model)
            except Exception as e:
                logger.error(f"[disposal] #{index} {name} failed: {e}")
                failures.append((name, e))

        if failures:
            raise DisposalError(failures) from failures[0][1]
        logger.info("✓ Disposal complete")
