"""Application Layer Package"""

from fraud_pipeline.application.services.pipeline_supervisor import PipelineSupervisor
from fraud_pipeline.application.use_cases.run_fraud_pipeline import run_fraud_pipeline

__all__ = [
    "PipelineSupervisor",
    "run_fraud_pipeline",
]
