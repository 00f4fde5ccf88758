"""Process-global collaborators shared by the API routes.

The address validation pipeline is built once from the loaded config.
Tests override ``get_pipeline`` through ``app.dependency_overrides``.
"""

import logging
import threading

from src.config import AddressValidationConfig, load_config
from src.services.address_validation import AddressValidationPipeline, build_pipeline

logger = logging.getLogger(__name__)

_config: AddressValidationConfig | None = None
_pipeline: AddressValidationPipeline | None = None
_lock = threading.Lock()


def get_validation_config() -> AddressValidationConfig:
    """Get or load the address validation settings."""
    global _config
    if _config is None:
        with _lock:
            if _config is None:
                _config = load_config().address_validation
    return _config


def get_pipeline() -> AddressValidationPipeline:
    """Get or create the process-global address validation pipeline."""
    global _pipeline
    if _pipeline is None:
        config = get_validation_config()
        with _lock:
            if _pipeline is None:
                _pipeline = build_pipeline(config)
                logger.info("Address validation pipeline initialized (%s)", _pipeline.provider)
    return _pipeline
