"""
MV Studio Media Module

Contact sheet and panel generation against hosted image models, with
failure classification, bounded retries and provenance tracking.
"""

from .error_classifier import ErrorCategory, classify_error, classify_response
from .generation_client import MediaGenerationClient
from .image_preprocessor import compress_image, crop_cell, decode_data_url, parse_data_url
from .orchestrator import GenerationPlan, OrchestrationResult, RequestShape, RetryOrchestrator
from .prompt_builder import PromptBuilder, PromptConstraints, PromptMode
from .provenance import ProvenanceStore
from .studio import MediaStudio, StudioResult
from .types import GenerationOptions, GenerationOutcome, ImagePayload

__all__ = [
    'ErrorCategory',
    'classify_error',
    'classify_response',
    'MediaGenerationClient',
    'compress_image',
    'crop_cell',
    'decode_data_url',
    'parse_data_url',
    'GenerationPlan',
    'OrchestrationResult',
    'RequestShape',
    'RetryOrchestrator',
    'PromptBuilder',
    'PromptConstraints',
    'PromptMode',
    'ProvenanceStore',
    'MediaStudio',
    'StudioResult',
    'GenerationOptions',
    'GenerationOutcome',
    'ImagePayload',
]
