"""Anti-bot helpers consumed by the crawler.

- Block-page detection (captcha / robot-check signatures)
- Failure taxonomy and retry classification
- Proxy configuration for browser sessions
- User-agent pool
"""

from .detection import detect_block
from .proxy import ProxyConfig, ProxyProvider
from .retry import (
    BotBlockedError,
    CrawlError,
    ErrorClass,
    ParseError,
    PersistenceError,
    RetryDecision,
    TransientFetchError,
    classify,
)
from .user_agent import UserAgentPool

__all__ = [
    "detect_block",
    "ProxyConfig",
    "ProxyProvider",
    "BotBlockedError",
    "CrawlError",
    "ErrorClass",
    "ParseError",
    "PersistenceError",
    "RetryDecision",
    "TransientFetchError",
    "classify",
    "UserAgentPool",
]
