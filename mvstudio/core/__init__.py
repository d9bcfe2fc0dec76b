"""
MV Studio Core Module

Contains core systems including configuration, constants, exceptions, logging
and the retry schedule.
"""

from .config import StudioConfig, load_config, save_config, get_config, set_config
from .constants import *
from .exceptions import *
from .logging_config import setup_logging, get_logger
from .prompts_config import PromptsConfig, load_prompts_config, save_prompts_config
from .retry import RetryConfig

__all__ = [
    'StudioConfig',
    'load_config',
    'save_config',
    'get_config',
    'set_config',
    'setup_logging',
    'get_logger',
    'PromptsConfig',
    'load_prompts_config',
    'save_prompts_config',
    'RetryConfig',
]
