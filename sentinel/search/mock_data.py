"""
데모/오프라인 모드용 합성 결과 생성

자격 증명 없이 demo_mode로 실행할 때만 사용한다.
- 같은 검색어와 파라미터면 항상 같은 결과 (무작위 요소 없음)
- 모든 결과는 source="mock"으로 표시된다
"""

import hashlib
import logging
import re
from typing import List

from sentinel.models.data_models import (
    ContentFilter,
    ContentType,
    NormalizedResult,
    SearchMode,
    SearchParameters,
    SearchType,
)
from sentinel.utils.relevance_scorer import RelevanceScorer
from sentinel.utils.url_deduplicator import canonical_url


logger = logging.getLogger(__name__)

MOCK_SOURCE = "mock"

TEXT_SOURCES = [
    "linkedin.com", "twitter.com", "instagram.com", "facebook.com",
    "youtube.com", "tiktok.com", "pinterest.com", "reddit.com",
    "tumblr.com", "flickr.com", "deviantart.com", "behance.net",
    "dribbble.com", "unsplash.com", "pexels.com", "shutterstock.com",
    "gettyimages.com", "stock.adobe.com", "istockphoto.com", "medium.com",
    "github.com", "stackoverflow.com", "dev.to", "techcrunch.com",
    "wired.com", "cnn.com", "bbc.com", "nytimes.com",
    "theguardian.com", "reuters.com",
]

SOCIAL_SOURCES = frozenset([
    "linkedin.com", "twitter.com", "instagram.com", "facebook.com",
    "tiktok.com", "pinterest.com", "reddit.com", "tumblr.com",
])

# 세이프서치 high에서 제외
UNSAFE_SOURCES = frozenset(["tiktok.com", "reddit.com", "twitch.tv"])

IMAGE_SOURCES = [
    "linkedin.com", "facebook.com", "instagram.com", "twitter.com",
    "youtube.com", "tiktok.com", "pinterest.com", "reddit.com",
    "tumblr.com", "flickr.com", "deviantart.com", "behance.net",
    "dribbble.com", "unsplash.com", "pexels.com", "shutterstock.com",
    "gettyimages.com", "stock.adobe.com", "istockphoto.com", "medium.com",
]

IMAGE_TYPE_SOURCES = {
    "face": ["facebook.com", "linkedin.com", "instagram.com"],
    "photo": ["unsplash.com", "pexels.com", "flickr.com", "instagram.com"],
    "clipart": ["shutterstock.com", "stock.adobe.com", "istockphoto.com"],
    "lineart": ["behance.net", "dribbble.com", "deviantart.com"],
    "animated": ["giphy.com", "tenor.com", "tumblr.com"],
}

_scorer = RelevanceScorer()


def _seed(*parts: str) -> int:
    """입력 문자열에서 결정적인 정수 생성"""
    digest = hashlib.md5("|".join(parts).encode("utf-8")).hexdigest()
    return int(digest[:8], 16)


def _slug(query: str) -> str:
    return re.sub(r"\s+", "-", query.strip().lower()) or "query"


def _matches(domain: str, sites) -> bool:
    return any(site in domain or domain in site for site in sites)


def _text_sources(params: SearchParameters) -> List[str]:
    sources = list(TEXT_SOURCES)
    if params.site_filter:
        sources = [s for s in sources if _matches(s, params.site_filter)]
    if params.exclude_sites:
        sources = [s for s in sources if not _matches(s, params.exclude_sites)]
    if params.content_filter == ContentFilter.HIGH:
        sources = [s for s in sources if s not in UNSAFE_SOURCES]
    return sources


def _title_prefix(query: str, params: SearchParameters) -> str:
    if params.exact_match:
        return f'Exact match: "{query}"'
    prefixes = {"last24h": "Latest", "lastWeek": "Recent", "lastMonth": "This month"}
    prefix = prefixes.get(params.date_restrict or "")
    return f"{prefix}: {query}" if prefix else query


def generate_text_results(
    provider_id: str,
    search_type: SearchType,
    query: str,
    params: SearchParameters,
    max_results: int,
) -> List[NormalizedResult]:
    """텍스트/해시태그 검색 합성 결과"""
    if search_type == SearchType.HASHTAG and not query.startswith("#"):
        query = f"#{query}"
    sources = _text_sources(params)[:max_results]
    prefix = _title_prefix(query, params)
    slug = _slug(query.lstrip("#"))

    raw = []
    for source in sources:
        name = source.split(".")[0]
        raw.append({
            "title": f"{prefix} on {name}",
            "url": f"https://{source}/search/{slug}",
            "snippet": f'Content matching "{query}" on {name}.',
            "domain": source,
            "thumbnail": f"https://picsum.photos/id/{_seed(provider_id, query, source) % 1000}/200/300",
        })

    scores = _scorer.score_items(query, raw)
    results = [
        NormalizedResult(
            title=item["title"],
            url=canonical_url(item["url"]),
            source_provider=provider_id,
            display_domain=item["domain"],
            thumbnail_url=item["thumbnail"],
            snippet=item["snippet"],
            content_type=ContentType.SOCIAL if item["domain"] in SOCIAL_SOURCES else ContentType.WEBSITE,
            relevance_score=score,
            source=MOCK_SOURCE,
        )
        for item, score in zip(raw, scores)
    ]
    logger.warning(f"데모 모드 합성 결과 사용: provider={provider_id}, {len(results)}개")
    return results


def _match_quality(index: int, mode: SearchMode) -> float:
    """순위별 유사도 (strict 모드는 상위 구간이 더 좁다)"""
    if mode == SearchMode.STRICT:
        tiers = ((3, 0.95), (8, 0.75), (None, 0.5))
    else:
        tiers = ((6, 0.9), (12, 0.7), (None, 0.45))
    for bound, base in tiers:
        if bound is None or index < bound:
            return max(0.0, base - 0.01 * index)
    return 0.0


def generate_image_results(
    provider_id: str,
    image_ref: str,
    params: SearchParameters,
    max_results: int,
) -> List[NormalizedResult]:
    """이미지 검색 합성 결과 (유사도 임계치 적용)"""
    sources = IMAGE_TYPE_SOURCES.get(params.image_type or "", IMAGE_SOURCES)
    threshold = params.similarity_threshold if params.similarity_threshold is not None else 0.6
    mode = params.search_mode

    results: List[NormalizedResult] = []
    for index, source in enumerate(sources):
        score = _match_quality(index, mode)
        if score < threshold:
            continue
        name = source.split(".")[0]
        image_id = _seed(provider_id, image_ref, source) % 1000
        results.append(NormalizedResult(
            title=f"{name.capitalize()} Visual Match",
            url=canonical_url(f"https://{source}/image-match-{index}"),
            source_provider=provider_id,
            display_domain=source,
            thumbnail_url=f"https://picsum.photos/id/{image_id}/200/300",
            snippet=f"{round(score * 100)}% similar to your uploaded image.",
            content_type=ContentType.IMAGE,
            relevance_score=score,
            source=MOCK_SOURCE,
        ))
        if len(results) >= max_results:
            break

    logger.warning(f"데모 모드 합성 이미지 결과 사용: provider={provider_id}, {len(results)}개")
    return results


def generate_video_results(
    provider_id: str,
    query: str,
    max_results: int,
) -> List[NormalizedResult]:
    """동영상 검색 합성 결과"""
    count = min(max_results, 10)
    raw = [
        {
            "title": f"{query} - video {i + 1}",
            "url": f"https://www.youtube.com/watch?v=mock{_seed(provider_id, query, str(i)) % 100000:05d}",
            "snippet": f'Video mentioning "{query}".',
        }
        for i in range(count)
    ]
    scores = _scorer.score_items(query, raw)
    return [
        NormalizedResult(
            title=item["title"],
            url=canonical_url(item["url"]),
            source_provider=provider_id,
            display_domain="youtube.com",
            snippet=item["snippet"],
            content_type=ContentType.VIDEO,
            relevance_score=score,
            source=MOCK_SOURCE,
        )
        for item, score in zip(raw, scores)
    ]


def generate_mock_results(
    provider_id: str,
    search_type: SearchType,
    query: str,
    params: SearchParameters,
    max_results: int,
) -> List[NormalizedResult]:
    """검색 유형별 합성 결과 생성"""
    if search_type == SearchType.IMAGE:
        return generate_image_results(provider_id, query, params, max_results)
    if search_type == SearchType.VIDEO:
        return generate_video_results(provider_id, query, max_results)
    return generate_text_results(provider_id, search_type, query, params, max_results)
