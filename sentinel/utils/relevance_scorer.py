"""
RelevanceScorer - 공급자 공통 관련성 점수 계산

- 순위 감쇠(position decay) + 제목/스니펫/URL 일치 보너스
- 점수는 항상 0.0 ~ 1.0 범위
- 같은 입력이면 항상 같은 점수 (무작위 요소 없음)
"""

import re
from typing import List, Sequence


class RelevanceScorer:
    """검색 결과 순위와 검색어 일치 여부로 관련성 점수를 계산하는 클래스"""

    # 제목에 검색어가 포함될 때 보너스
    TITLE_BONUS = 0.3
    # 스니펫에 검색어가 포함될 때 보너스
    SNIPPET_BONUS = 0.2
    # URL에 검색어(공백 제거)가 포함될 때 보너스
    URL_BONUS = 0.1

    def position_score(self, index: int, total: int) -> float:
        """순위 기반 기본 점수 (첫 결과 1.0에서 선형 감소)"""
        if total <= 0:
            return 0.0
        return max(0.0, 1.0 - (index / total))

    def calculate_score(
        self,
        query: str,
        index: int,
        total: int,
        title: str = "",
        snippet: str = "",
        url: str = "",
    ) -> float:
        """관련성 점수 계산 (0.0 ~ 1.0)

        Args:
            query: 검색어
            index: 결과 목록에서의 위치 (0부터)
            total: 결과 목록 길이
            title: 결과 제목
            snippet: 결과 요약
            url: 결과 URL

        Returns:
            0.0 ~ 1.0 범위의 관련성 점수
        """
        score = self.position_score(index, total)

        needle = (query or "").strip().lower()
        if needle:
            if needle in (title or "").lower():
                score += self.TITLE_BONUS
            if needle in (snippet or "").lower():
                score += self.SNIPPET_BONUS
            compact = re.sub(r"\s+", "", needle)
            if compact and compact in (url or "").lower():
                score += self.URL_BONUS

        return min(1.0, max(0.0, score))

    def score_items(self, query: str, items: Sequence[dict], title_key: str = "title",
                    snippet_key: str = "snippet", url_key: str = "url") -> List[float]:
        """원시 결과 딕셔너리 목록의 점수를 순서대로 계산"""
        total = len(items)
        return [
            self.calculate_score(
                query,
                index,
                total,
                title=item.get(title_key) or "",
                snippet=item.get(snippet_key) or "",
                url=item.get(url_key) or "",
            )
            for index, item in enumerate(items)
        ]

    def similarity_score(self, index: int, total: int) -> float:
        """이미지 검색 유사도 점수

        순위 감쇠를 0.5 ~ 1.0 구간으로 압축한다. 마지막 결과도 0.5 이상이다.
        """
        if total <= 0:
            return 0.0
        return 1.0 - 0.5 * (index / total)
