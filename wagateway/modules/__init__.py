"""
wagateway Modules - Black Box Architecture

Each module is a self-contained black box with:
- Clear interface (public API)
- Hidden implementation details
- Single responsibility

The HTTP facade talks to the session module only; the session module talks
to the messaging client only through its Protocol.
"""
