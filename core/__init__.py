"""
Veo Relay Core Components

Provides foundational infrastructure for the relay:
- Environment-driven configuration
- Error taxonomy shared by the services and the HTTP layer
- Circuit breaker for upstream API resilience
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerOpen, CircuitState
from .config import Config, get_config

__all__ = ["CircuitBreaker", "CircuitBreakerOpen", "CircuitState", "Config", "get_config"]
