"""Connecto — a local services marketplace engine.

Customers send deal requests to workers; workers accept, waitlist or
reject them and move accepted work to completion; customers review
completed work. Moderation gates every actor-driven transition.
"""

__version__ = "0.1.0"
