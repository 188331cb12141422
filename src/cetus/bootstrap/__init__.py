"""Startup sequencing and the single shutdown funnel."""

from cetus.bootstrap.sequencer import BootstrapSequencer, Stage, StageResult, StageStatus
from cetus.bootstrap.shutdown import BootstrapOutcome, ShutdownCoordinator, ShutdownResources

__all__ = [
	"BootstrapOutcome",
	"BootstrapSequencer",
	"ShutdownCoordinator",
	"ShutdownResources",
	"Stage",
	"StageResult",
	"StageStatus",
]
