"""Shipwright: multi-format package build, signing, release and replication.

Given a version tag on a source tree, Shipwright builds the software into
several distribution formats, signs every package, publishes a single
release carrying all of them, and pushes blob references into downstream
package repositories.

  - Job scheduler over a validated DAG (concurrent, fail-fast cascade)
  - Per-format builders driven by configuration
  - Per-job ephemeral GnuPG keyrings
  - Idempotent release publishing with bounded retry
  - Collision-free update branches for downstream repositories
  - Hash-chained Run Ledger of every job transition
"""

__version__ = "0.1.0"

from shipwright.core.pipeline import ReleasePipeline, load_pipeline_config
from shipwright.core.scheduler import Scheduler
from shipwright.core.trigger import TriggerEvent

__all__ = [
    "ReleasePipeline",
    "Scheduler",
    "TriggerEvent",
    "load_pipeline_config",
    "__version__",
]
