"""Hotel identity service.

Registration saga across the primary user store and an external identity
provider, plus dual-path bearer token verification.
"""

__version__ = "0.1.0"
