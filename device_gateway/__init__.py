"""Smart-home vendor gateway.

Normalizes devices from multiple vendor clouds into one device model
and executes commands with authorization, rate limiting, retries and
post-command state verification.
"""

__version__ = "0.1.0"
