"""Core domain package for igbridge.

Core contains the routing, provisioning, filtering and command logic without
any Telegram, Instagram or storage-specific code, keeping the bridge logic
portable and testable with fakes.
"""
