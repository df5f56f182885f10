# Utilities Package
"""유틸리티 함수 및 클래스"""

from sentinel.utils.relevance_scorer import RelevanceScorer
from sentinel.utils.url_deduplicator import ResultMerger, canonical_url, deduplicate_results
from sentinel.utils.quota_manager import QuotaManager
from sentinel.utils.scheduler import PeriodicTask

__all__ = [
    "RelevanceScorer",
    "ResultMerger",
    "canonical_url",
    "deduplicate_results",
    "QuotaManager",
    "PeriodicTask",
]
