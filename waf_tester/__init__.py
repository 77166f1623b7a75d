"""Traffic generator for probing WAF and rate-limiter behaviour."""

__version__ = "1.0.0"
