"""Vision-model clients."""
from .anthropic_client import AnthropicVisionExtractor

__all__ = ["AnthropicVisionExtractor"]
