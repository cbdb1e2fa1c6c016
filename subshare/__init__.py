"""
SubShare - a ledger for splitting shared subscriptions.

An admin splits a subscription into slots, members claim slots and prove
payment with a transfer receipt that an AI verifier pre-checks and a human
accepts. Shared credentials are shown only inside a short reveal window.
"""

__version__ = "0.1.0"
