from tributary.adapters.anthropic import AnthropicAdapter
from tributary.adapters.base import VendorAdapter
from tributary.adapters.openai import OpenAIAdapter

__all__ = ["AnthropicAdapter", "OpenAIAdapter", "VendorAdapter"]
