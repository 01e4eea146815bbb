from .settings import AiosSettings, LLMSettings, RetrySettings, StoreSettings, load_settings

__all__ = ["AiosSettings", "LLMSettings", "RetrySettings", "StoreSettings", "load_settings"]
