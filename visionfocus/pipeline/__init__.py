"""Pipeline orchestration: one recognition cycle from frame to announcement."""

from .orchestrator import PipelineConfig, PipelineOrchestrator
