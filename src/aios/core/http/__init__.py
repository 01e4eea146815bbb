from .client import build_http_client, is_retryable_status, post_json_with_retry
from .errors import AiosHTTPError, AiosHTTPNetworkError, AiosHTTPStatusError, AiosHTTPTimeoutError, LLMOutputError

__all__ = [
    "build_http_client",
    "is_retryable_status",
    "post_json_with_retry",
    "AiosHTTPError",
    "AiosHTTPNetworkError",
    "AiosHTTPStatusError",
    "AiosHTTPTimeoutError",
    "LLMOutputError",
]
