"""
wagateway - WhatsApp Web Session Gateway

Exposes a browser-driven WhatsApp Web session over HTTP.

Architecture:
- Each module is self-contained with clear interfaces
- Modules are completely replaceable
- No module knows the internals of another
- All communication through defined interfaces

Modules:
- session: Session lifecycle state machine and relaunch policy
- client: Messaging client interface and the Playwright-backed implementation
- api: Request/response models for the HTTP facade
- config: Runtime configuration
"""

__version__ = "1.0.0"
