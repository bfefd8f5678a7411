"""Gateway layer: domain registry, rate limiter, dispatcher and bootstrap."""

from mategate.gateway.bootstrap import Gateway, build_gateway
from mategate.gateway.dispatcher import Dispatcher
from mategate.gateway.ratelimit import RateLimiter
from mategate.gateway.registry import DomainRegistry

__all__ = ["DomainRegistry", "Dispatcher", "Gateway", "RateLimiter", "build_gateway"]
