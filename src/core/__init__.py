"""Core domain package for skybridge.

Core contains routing, message identity, pipeline and startup logic without
any Telegram, Discord or storage-specific code, keeping the relay portable.
"""
