"""Reviews — eligibility, submission and worker rating summaries."""

from connecto.reviews.service import ReviewService, summarize_ratings

__all__ = ["ReviewService", "summarize_ratings"]
