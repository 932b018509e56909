"""Deal requests — the authoritative store and its transition pipeline."""

from connecto.deals.store import DealStore

__all__ = ["DealStore"]
