"""Console chat client for local OpenAI-compatible LLM servers."""

__version__ = "1.0.0"
