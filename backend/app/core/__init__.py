# app/core/__init__.py
"""
Core application modules.
Contains essential infrastructure components:
- db: Database configuration and connection management
- errors: Error taxonomy rendered by the API exception handler
- locks: Per-identity asyncio locks
- maintenance: Background retention sweep
- security: Anonymous credential signing and verification
- timeutil: UTC clock helpers
"""
