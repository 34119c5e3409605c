"""
Encoder Abstraction
Text/image embeddings and the weighted combiner
"""

from app.encoder.combiner import WeightPolicy, combine
from app.encoder.factory import get_encoder
from app.encoder.protocol import EncoderProtocol, Vector, to_vector

__all__ = ["EncoderProtocol", "Vector", "WeightPolicy", "combine", "get_encoder", "to_vector"]
