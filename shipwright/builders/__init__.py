"""Package builders — one toolchain run per target format."""

from shipwright.builders.builder import PackageBuilder, build_job_id, run_check

__all__ = ["PackageBuilder", "build_job_id", "run_check"]
