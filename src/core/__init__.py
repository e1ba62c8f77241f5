"""Core domain package for packtrack.

Core contains status normalization, tracking number validation, the
reconciliation engine and the chat intake dialog without any Telegram,
17TRACK or storage-specific code, keeping the business logic portable.
"""
