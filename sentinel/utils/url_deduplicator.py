"""
URL 정규화 및 결과 병합

- 정규화된 URL(canonical URL)을 중복 제거 키로 사용
- 먼저 들어온 결과가 유지되고 이후 중복은 버린다
- 병합 단계에서는 순서를 바꾸지 않는다
"""

from typing import Iterable, List, Set
from urllib.parse import urlparse, urlunparse

from sentinel.models.data_models import CombinedResult, NormalizedResult


def canonical_url(url: str) -> str:
    """URL을 비교 가능한 형태로 정규화

    스킴과 호스트는 소문자로, 후행 슬래시와 프래그먼트는 제거한다.
    경로와 쿼리는 대소문자를 유지한다.

    Args:
        url: 정규화할 URL

    Returns:
        정규화된 URL 문자열
    """
    url = (url or "").strip()
    if not url:
        return ""
    try:
        parsed = urlparse(url)
    except ValueError:
        return url.lower()
    if not parsed.scheme or not parsed.netloc:
        return url.lower()
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        parsed.path.rstrip('/'),
        parsed.params,
        parsed.query,
        ''  # 프래그먼트 제거
    ))


def deduplicate_results(results: Iterable[NormalizedResult]) -> List[NormalizedResult]:
    """URL 기준 중복 제거 (원본 순서 유지, URL 없는 결과는 제외)"""
    seen: Set[str] = set()
    deduplicated = []
    for result in results:
        key = canonical_url(result.url)
        if not key or key in seen:
            continue
        seen.add(key)
        deduplicated.append(result)
    return deduplicated


class ResultMerger:
    """여러 공급자 결과를 중복 없이 병합"""

    def merge(self, target: CombinedResult, source: Iterable[NormalizedResult]) -> int:
        """source 결과를 target에 병합 (target을 직접 변경)

        Args:
            target: 누적 중인 병합 결과
            source: 새로 추가할 결과 목록

        Returns:
            실제로 추가된 결과 수
        """
        existing = {canonical_url(item.url) for item in target.items}
        added = 0
        for item in source:
            key = canonical_url(item.url)
            if not key or key in existing:
                continue
            target.items.append(item)
            existing.add(key)
            added += 1
        return added

    def merge_all(self, result_lists: Iterable[Iterable[NormalizedResult]]) -> List[NormalizedResult]:
        """여러 결과 목록을 순서대로 병합한 새 목록 반환"""
        merged: List[NormalizedResult] = []
        for results in result_lists:
            merged.extend(results)
        return deduplicate_results(merged)
