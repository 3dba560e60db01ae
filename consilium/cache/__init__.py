"""Consultation cache keyed by case fingerprint."""

from consilium.cache.store import CacheStats, ConsultationCache, SimilarCase

__all__ = ["CacheStats", "ConsultationCache", "SimilarCase"]
