"""
Encoder Factory
Creates the configured encoder once per process
"""

from app.core.config import settings
from app.core.logging import get_logger
from app.encoder.protocol import EncoderProtocol

logger = get_logger(__name__)

_encoder: EncoderProtocol | None = None


def create_encoder() -> EncoderProtocol:
    """
    Build an encoder for ``settings.encoder_type``

    Raises:
        ValueError: If encoder_type is not supported
    """
    encoder_type = settings.encoder_type
    logger.info("encoder_factory", encoder_type=encoder_type)

    if encoder_type == "mock":
        from app.encoder.mock import HashingEncoder

        return HashingEncoder()

    if encoder_type == "clip":
        from app.encoder.clip import ClipEncoder

        return ClipEncoder()

    raise ValueError(f"Unsupported encoder_type: {encoder_type}. Supported types: clip, mock")


def get_encoder() -> EncoderProtocol:
    """Singleton encoder shared by indexer and search service."""
    global _encoder
    if _encoder is None:
        _encoder = create_encoder()
    return _encoder
