"""ai-gateway — multi-provider generative-AI failover with budget admission control."""

__version__ = "0.1.0"
