"""
Provider Adapter 구현

- ProviderAdapter: 검색 공급자 어댑터 추상 클래스
- GoogleCSEAdapter: Google Custom Search JSON API 어댑터 (주 공급자)
- BingSearchAdapter: Bing Web/Image/Video Search API 어댑터
- YouTubeAdapter: YouTube Data API 동영상 검색 어댑터
- DuckDuckGoAdapter: DuckDuckGo 검색 어댑터 (키 불필요)

어댑터는 공통 SearchParameters를 공급자별 요청 형식으로 바꾸고,
원시 응답을 NormalizedResult 목록으로 정규화한다.
"""

import logging
import math
import os
import re
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, FrozenSet, List, Optional, Union
from urllib.parse import urlparse

import requests

from sentinel.errors import ConfigurationError, ProviderError
from sentinel.models.data_models import (
    ContentFilter,
    ContentType,
    NormalizedResult,
    SearchConfig,
    SearchMode,
    SearchParameters,
    SearchType,
    SortBy,
)
from sentinel.search.mock_data import SOCIAL_SOURCES, generate_mock_results
from sentinel.utils.relevance_scorer import RelevanceScorer
from sentinel.utils.url_deduplicator import canonical_url, deduplicate_results


logger = logging.getLogger(__name__)

# 이 길이보다 짧은 API 키는 잘못된 값으로 본다
MIN_API_KEY_LENGTH = 10

# 이미지 URL에서 검색어를 만들 수 없을 때 사용하는 기본 검색어
DEFAULT_IMAGE_QUERY = "image similar to uploaded content"

# strict 모드의 최소 유사도
STRICT_SIMILARITY_FLOOR = 0.8
DEFAULT_SIMILARITY_THRESHOLD = 0.6


def display_domain(url: str) -> str:
    """URL에서 표시용 도메인 추출 (www. 제거)"""
    netloc = urlparse(url).netloc.lower()
    return netloc[4:] if netloc.startswith("www.") else netloc


def classify_domain(domain: str) -> ContentType:
    """도메인으로 콘텐츠 유형 추정"""
    if any(domain == s or domain.endswith("." + s) for s in SOCIAL_SOURCES):
        return ContentType.SOCIAL
    return ContentType.WEBSITE


def image_query_from_ref(image_ref: str) -> str:
    """이미지 URL의 파일 이름에서 설명 검색어 생성"""
    stem = os.path.splitext(os.path.basename(urlparse(image_ref).path))[0]
    words = re.sub(r"[-_.]+", " ", stem).strip()
    if not words or words.isdigit() or len(words) < 3:
        return DEFAULT_IMAGE_QUERY
    return words


class ProviderAdapter(ABC):
    """검색 공급자 어댑터 추상 클래스

    - execute(): 자격 증명 확인, 데모 모드 처리 후 _search() 호출
    - 자격 증명이 없으면 ConfigurationError. 단, demo_mode면
      source="mock"으로 표시된 합성 결과를 반환한다
    - 모든 HTTP 호출은 request_timeout으로 제한된다
    """

    # 공급자가 처리할 수 있는 검색 유형
    supported_types: FrozenSet[SearchType] = frozenset()
    # 한 페이지 최대 결과 수
    page_size: int = 10
    requires_credentials: bool = True

    def __init__(self, config: Optional[SearchConfig] = None, session: Optional[requests.Session] = None):
        """ProviderAdapter 초기화

        Args:
            config: 검색 설정
            session: HTTP 세션 (테스트에서 주입 가능)
        """
        self._config = config or SearchConfig()
        self._session = session or requests.Session()
        self._scorer = RelevanceScorer()
        self._last_error: Optional[str] = None

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """공급자 식별자 (할당량/우선순위 키)"""

    @property
    def name(self) -> str:
        """표시용 이름"""
        return self.provider_id

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def configuration_hint(self) -> str:
        """자격 증명이 없을 때 안내 메시지"""
        return f"{self.name} 자격 증명이 설정되지 않았습니다."

    @abstractmethod
    def is_configured(self) -> bool:
        """자격 증명 설정 여부"""

    def is_available(self) -> bool:
        """일시적 차단(throttle) 상태가 아니면 True"""
        return True

    def supports(self, search_type: Union[SearchType, str]) -> bool:
        return SearchType(search_type) in self.supported_types

    def close(self) -> None:
        """HTTP 세션 종료"""
        self._session.close()

    def execute(
        self,
        search_type: Union[SearchType, str],
        query: str,
        params: Union[SearchParameters, dict, None] = None,
    ) -> List[NormalizedResult]:
        """검색 수행

        Args:
            search_type: 검색 유형
            query: 검색어 (이미지 검색이면 이미지 URL)
            params: 검색 파라미터

        Returns:
            정규화된 검색 결과 목록

        Raises:
            ConfigurationError: 자격 증명 누락 (데모 모드 아님)
            ProviderError: 지원하지 않는 유형, 네트워크/응답 오류
        """
        search_type = SearchType(search_type)
        if not isinstance(params, SearchParameters):
            params = SearchParameters.from_dict(params)
        if not self.supports(search_type):
            raise ProviderError(self.provider_id, f"지원하지 않는 검색 유형: {search_type.value}")

        max_results = params.max_results or self._config.max_results_per_engine

        if self._config.demo_mode and (not self.requires_credentials or not self.is_configured()):
            return generate_mock_results(self.provider_id, search_type, query, params, max_results)

        if not self.is_configured():
            raise ConfigurationError(self.provider_id, self.configuration_hint)

        logger.info(f"{self.name} 검색: type={search_type.value}, query={query!r}")
        try:
            results = self._search(search_type, query, params, max_results)
        except ProviderError as e:
            self._last_error = str(e)
            logger.error(f"{self.name} 검색 실패: {e}")
            raise
        self._last_error = None
        # 페이지 사이에 같은 URL이 다시 나올 수 있음
        results = deduplicate_results(results)
        logger.info(f"{self.name} 검색 완료: {len(results)}개 결과")
        return results

    @abstractmethod
    def _search(
        self,
        search_type: SearchType,
        query: str,
        params: SearchParameters,
        max_results: int,
    ) -> List[NormalizedResult]:
        """공급자별 검색 구현"""

    def _get_json(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> dict:
        """GET 요청 후 JSON 반환. 실패는 모두 ProviderError로 변환"""
        try:
            response = self._session.get(
                url, params=params, headers=headers, timeout=self._config.request_timeout
            )
            response.raise_for_status()
            return response.json()
        except requests.Timeout as e:
            raise ProviderError(self.provider_id, f"요청 시간 초과 ({self._config.request_timeout}s)") from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise ProviderError(self.provider_id, f"HTTP 오류 {status}: {e}", status_code=status) from e
        except requests.RequestException as e:
            raise ProviderError(self.provider_id, f"네트워크 오류: {e}") from e
        except ValueError as e:
            raise ProviderError(self.provider_id, f"잘못된 응답 형식: {e}") from e

    def _fetch_pages(self, fetch_page: Callable[[int, int], List[dict]], max_results: int) -> List[dict]:
        """페이지 단위 순차 조회

        - 최대 max_pages 페이지까지 조회
        - 페이지 결과가 페이지 크기보다 적으면 마지막 페이지로 보고 중단
        - 첫 페이지 실패는 그대로 전파, 이후 페이지 실패는 이미 모은 결과 유지

        Args:
            fetch_page: (offset, count) → 원시 결과 목록
            max_results: 최대 결과 수

        Returns:
            원시 결과 목록
        """
        num_pages = min(self._config.max_pages, max(1, math.ceil(max_results / self.page_size)))
        collected: List[dict] = []

        for page in range(num_pages):
            offset = page * self.page_size
            count = min(self.page_size, max_results - offset)
            if count <= 0:
                break
            try:
                items = fetch_page(offset, count)
            except ProviderError as e:
                if page == 0:
                    raise
                logger.warning(f"{self.name} {page + 1}페이지 조회 실패, 부분 결과 유지: {e}")
                break
            collected.extend(items)
            if len(items) < count:
                break

        return collected[:max_results]


class GoogleCSEAdapter(ProviderAdapter):
    """Google Custom Search Engine 어댑터

    - 텍스트, 해시태그, 이미지 검색
    - 페이지당 최대 10개, 최대 3페이지
    """

    ENDPOINT = "https://www.googleapis.com/customsearch/v1"
    supported_types = frozenset([SearchType.TEXT, SearchType.HASHTAG, SearchType.IMAGE])

    def __init__(self, config: Optional[SearchConfig] = None, session: Optional[requests.Session] = None):
        super().__init__(config, session)
        self._api_key = self._config.google_api_key
        self._cse_id = self._config.google_cse_id
        self.page_size = min(10, self._config.page_size)

    @property
    def provider_id(self) -> str:
        return "google"

    @property
    def name(self) -> str:
        return "GoogleCSE"

    @property
    def configuration_hint(self) -> str:
        if not self._api_key:
            return "Google API 키가 없습니다. GOOGLE_API_KEY 환경 변수를 설정하세요."
        if not self._cse_id:
            return "Google CSE ID가 없습니다. GOOGLE_CSE_ID 환경 변수를 설정하세요."
        return "Google API 키가 너무 짧습니다. GOOGLE_API_KEY 값을 확인하세요."

    def is_configured(self) -> bool:
        """API 키와 CSE ID가 설정되어 있어야 사용 가능"""
        return bool(self._api_key and self._cse_id and len(self._api_key) >= MIN_API_KEY_LENGTH)

    def build_params(self, search_type: SearchType, query: str, params: SearchParameters) -> Dict[str, str]:
        """공통 파라미터를 Custom Search 쿼리 스트링으로 변환"""
        if search_type == SearchType.HASHTAG and not query.startswith("#"):
            query = f"#{query}"
        if search_type == SearchType.IMAGE:
            query = image_query_from_ref(query)

        request_params: Dict[str, str] = {
            "key": self._api_key or "",
            "cx": self._cse_id or "",
            "q": query,
        }

        if params.exact_match and search_type != SearchType.IMAGE:
            request_params["exactTerms"] = query
        if params.date_restrict:
            request_params["dateRestrict"] = params.date_restrict
        if params.content_filter is not None:
            request_params["safe"] = "active" if params.content_filter == ContentFilter.HIGH else "off"
        if params.site_filter:
            request_params["siteSearch"] = "|".join(sorted(params.site_filter))
            request_params["siteSearchFilter"] = "i"
        elif params.exclude_sites:
            # siteSearch는 포함/제외 중 하나만 가능
            request_params["siteSearch"] = "|".join(sorted(params.exclude_sites))
            request_params["siteSearchFilter"] = "e"
        if params.language:
            request_params["lr"] = f"lang_{params.language}"
        if params.country:
            request_params["cr"] = f"country{params.country.upper()}"
        if params.file_type:
            request_params["fileType"] = params.file_type
        if params.rights:
            request_params["rights"] = params.rights
        if params.sort_by == SortBy.DATE:
            request_params["sort"] = "date"

        if search_type == SearchType.IMAGE:
            request_params["searchType"] = "image"
            if params.image_type:
                request_params["imgType"] = params.image_type
            if params.image_color_type:
                request_params["imgColorType"] = params.image_color_type
            if params.dominant_color:
                request_params["imgDominantColor"] = params.dominant_color
            if params.min_size in ("large", "xlarge"):
                request_params["imgSize"] = "large"
            elif params.min_size == "small":
                request_params["imgSize"] = "small"
            else:
                request_params["imgSize"] = "medium"

        return request_params

    def _search(self, search_type, query, params, max_results):
        base_params = self.build_params(search_type, query, params)

        def fetch_page(offset: int, count: int) -> List[dict]:
            page_params = dict(base_params, start=str(offset + 1), num=str(count))
            return self._get_json(self.ENDPOINT, params=page_params).get("items") or []

        items = self._fetch_pages(fetch_page, max_results)
        if search_type == SearchType.IMAGE:
            return self._normalize_images(items, params)
        return self._normalize_web(items, base_params["q"])

    def _normalize_web(self, items: List[dict], query: str) -> List[NormalizedResult]:
        scores = self._scorer.score_items(query, items, url_key="link")
        results = []
        for item, score in zip(items, scores):
            link = item.get("link")
            if not link:
                continue
            domain = item.get("displayLink") or display_domain(link)
            pagemap = item.get("pagemap") or {}
            thumbnails = pagemap.get("cse_thumbnail") or pagemap.get("cse_image") or [{}]
            results.append(NormalizedResult(
                title=item.get("title", ""),
                url=canonical_url(link),
                source_provider=self.provider_id,
                display_domain=domain,
                thumbnail_url=thumbnails[0].get("src", ""),
                snippet=item.get("snippet", ""),
                content_type=classify_domain(domain),
                relevance_score=score,
            ))
        return results

    def _normalize_images(self, items: List[dict], params: SearchParameters) -> List[NormalizedResult]:
        threshold = params.similarity_threshold
        if threshold is None:
            threshold = DEFAULT_SIMILARITY_THRESHOLD
        if params.search_mode == SearchMode.STRICT:
            threshold = max(threshold, STRICT_SIMILARITY_FLOOR)

        results = []
        total = len(items)
        for index, item in enumerate(items):
            link = item.get("link")
            if not link:
                continue
            similarity = self._scorer.similarity_score(index, total)
            if similarity < threshold:
                continue
            image = item.get("image") or {}
            context = image.get("contextLink") or link
            domain = item.get("displayLink") or display_domain(context)
            results.append(NormalizedResult(
                title=item.get("title", ""),
                url=canonical_url(link),
                source_provider=self.provider_id,
                display_domain=domain,
                thumbnail_url=image.get("thumbnailLink", ""),
                snippet=item.get("snippet", ""),
                content_type=ContentType.IMAGE,
                relevance_score=similarity,
            ))
        return results


class BingSearchAdapter(ProviderAdapter):
    """Bing Search API v7 어댑터

    - 웹(텍스트/해시태그), 이미지, 동영상 검색
    - 사이트 필터는 쿼리 연산자(site:, -site:)로 표현
    """

    BASE_URL = "https://api.bing.microsoft.com/v7.0"
    ENDPOINTS = {
        SearchType.TEXT: "/search",
        SearchType.HASHTAG: "/search",
        SearchType.IMAGE: "/images/search",
        SearchType.VIDEO: "/videos/search",
    }
    FRESHNESS = {
        "last24h": "Day", "d1": "Day",
        "lastWeek": "Week", "w1": "Week",
        "lastMonth": "Month", "m1": "Month",
    }
    supported_types = frozenset(ENDPOINTS)
    page_size = 50

    def __init__(self, config: Optional[SearchConfig] = None, session: Optional[requests.Session] = None):
        super().__init__(config, session)
        self._api_key = self._config.bing_api_key

    @property
    def provider_id(self) -> str:
        return "bing"

    @property
    def name(self) -> str:
        return "BingSearch"

    @property
    def configuration_hint(self) -> str:
        return "Bing API 키가 없거나 잘못되었습니다. BING_API_KEY 환경 변수를 설정하세요."

    def is_configured(self) -> bool:
        return bool(self._api_key and len(self._api_key) >= MIN_API_KEY_LENGTH)

    @staticmethod
    def map_safe_search(content_filter: Optional[ContentFilter]) -> str:
        """콘텐츠 필터 → Bing safeSearch"""
        if content_filter == ContentFilter.HIGH:
            return "Strict"
        if content_filter == ContentFilter.OFF:
            return "Off"
        return "Moderate"

    @staticmethod
    def map_image_type(image_type: Optional[str]) -> str:
        """이미지 유형 → Bing imageType"""
        mapping = {
            "photo": "Photo", "photograph": "Photo",
            "clipart": "Clipart",
            "lineart": "Line", "line-drawing": "Line",
            "gif": "AnimatedGif", "animated": "AnimatedGif",
        }
        return mapping.get((image_type or "").lower(), "All")

    def build_query(self, search_type: SearchType, query: str, params: SearchParameters) -> str:
        if search_type == SearchType.IMAGE:
            query = image_query_from_ref(query)
        elif search_type == SearchType.HASHTAG and not query.startswith("#"):
            query = f"#{query}"
        if params.exact_match and search_type != SearchType.IMAGE:
            query = f'"{query}"'
        if params.site_filter:
            query += " (" + " OR ".join(f"site:{s}" for s in sorted(params.site_filter)) + ")"
        for site in sorted(params.exclude_sites):
            query += f" -site:{site}"
        if params.file_type:
            query += f" filetype:{params.file_type}"
        return query

    def build_params(self, search_type: SearchType, query: str, params: SearchParameters) -> Dict[str, str]:
        """공통 파라미터를 Bing 쿼리 스트링으로 변환"""
        language = params.language or "en"
        country = (params.country or "US").upper()
        request_params = {
            "q": self.build_query(search_type, query, params),
            "mkt": f"{language}-{country}",
            "safeSearch": self.map_safe_search(params.content_filter),
        }
        freshness = self.FRESHNESS.get(params.date_restrict or "")
        if freshness:
            request_params["freshness"] = freshness
        if params.sort_by == SortBy.DATE and search_type == SearchType.VIDEO:
            request_params["sortBy"] = "Date"
        if search_type == SearchType.IMAGE:
            request_params["imageType"] = self.map_image_type(params.image_type)
            if params.min_size:
                request_params["size"] = "Large" if params.min_size in ("large", "xlarge") else params.min_size.capitalize()
        return request_params

    def _search(self, search_type, query, params, max_results):
        url = self.BASE_URL + self.ENDPOINTS[search_type]
        headers = {"Ocp-Apim-Subscription-Key": self._api_key or "", "Accept": "application/json"}
        base_params = self.build_params(search_type, query, params)

        def fetch_page(offset: int, count: int) -> List[dict]:
            page_params = dict(base_params, count=str(count), offset=str(offset))
            data = self._get_json(url, params=page_params, headers=headers)
            if search_type in (SearchType.TEXT, SearchType.HASHTAG):
                return (data.get("webPages") or {}).get("value") or []
            return data.get("value") or []

        items = self._fetch_pages(fetch_page, max_results)
        return self._normalize(search_type, items, base_params["q"], params)

    def _normalize(self, search_type, items, query, params) -> List[NormalizedResult]:
        if search_type == SearchType.IMAGE:
            threshold = params.similarity_threshold
            if threshold is None:
                threshold = DEFAULT_SIMILARITY_THRESHOLD
            if params.search_mode == SearchMode.STRICT:
                threshold = max(threshold, STRICT_SIMILARITY_FLOOR)
            total = len(items)
            results = []
            for index, item in enumerate(items):
                link = item.get("contentUrl")
                similarity = self._scorer.similarity_score(index, total)
                if not link or similarity < threshold:
                    continue
                host = item.get("hostPageUrl") or link
                results.append(NormalizedResult(
                    title=item.get("name", ""),
                    url=canonical_url(link),
                    source_provider=self.provider_id,
                    display_domain=display_domain(host),
                    thumbnail_url=item.get("thumbnailUrl", ""),
                    snippet=item.get("hostPageDisplayUrl", ""),
                    content_type=ContentType.IMAGE,
                    relevance_score=similarity,
                ))
            return results

        url_key = "contentUrl" if search_type == SearchType.VIDEO else "url"
        snippet_key = "description" if search_type == SearchType.VIDEO else "snippet"
        scores = self._scorer.score_items(query, items, title_key="name", snippet_key=snippet_key, url_key=url_key)
        results = []
        for item, score in zip(items, scores):
            link = item.get(url_key)
            if not link:
                continue
            domain = display_domain(item.get("hostPageUrl") or link)
            content_type = ContentType.VIDEO if search_type == SearchType.VIDEO else classify_domain(domain)
            results.append(NormalizedResult(
                title=item.get("name", ""),
                url=canonical_url(link),
                source_provider=self.provider_id,
                display_domain=domain,
                thumbnail_url=item.get("thumbnailUrl", ""),
                snippet=item.get(snippet_key, ""),
                content_type=content_type,
                relevance_score=score,
            ))
        return results


class YouTubeAdapter(ProviderAdapter):
    """YouTube Data API v3 동영상 검색 어댑터"""

    ENDPOINT = "https://www.googleapis.com/youtube/v3/search"
    supported_types = frozenset([SearchType.VIDEO])
    page_size = 50

    def __init__(self, config: Optional[SearchConfig] = None, session: Optional[requests.Session] = None):
        super().__init__(config, session)
        self._api_key = self._config.youtube_api_key

    @property
    def provider_id(self) -> str:
        return "youtube"

    @property
    def name(self) -> str:
        return "YouTube"

    @property
    def configuration_hint(self) -> str:
        return "YouTube API 키가 없거나 잘못되었습니다. YOUTUBE_API_KEY 환경 변수를 설정하세요."

    def is_configured(self) -> bool:
        return bool(self._api_key and len(self._api_key) >= MIN_API_KEY_LENGTH)

    def build_params(self, query: str, params: SearchParameters) -> Dict[str, str]:
        safe = {ContentFilter.HIGH: "strict", ContentFilter.OFF: "none"}
        request_params = {
            "key": self._api_key or "",
            "part": "snippet",
            "type": "video",
            "q": f'"{query}"' if params.exact_match else query,
            "safeSearch": safe.get(params.content_filter, "moderate"),
            "order": "date" if params.sort_by == SortBy.DATE else "relevance",
        }
        if params.language:
            request_params["relevanceLanguage"] = params.language
        if params.country:
            request_params["regionCode"] = params.country.upper()
        return request_params

    def _search(self, search_type, query, params, max_results):
        base_params = self.build_params(query, params)
        page_token: Dict[str, Optional[str]] = {"next": None}

        def fetch_page(offset: int, count: int) -> List[dict]:
            page_params = dict(base_params, maxResults=str(count))
            if offset and not page_token["next"]:
                return []
            if page_token["next"]:
                page_params["pageToken"] = page_token["next"]
            data = self._get_json(self.ENDPOINT, params=page_params)
            page_token["next"] = data.get("nextPageToken")
            return data.get("items") or []

        items = self._fetch_pages(fetch_page, max_results)
        raw = []
        for item in items:
            video_id = (item.get("id") or {}).get("videoId")
            if not video_id:
                continue
            snippet = item.get("snippet") or {}
            thumbnail = ((snippet.get("thumbnails") or {}).get("default") or {}).get("url", "")
            raw.append({
                "title": snippet.get("title", ""),
                "url": f"https://www.youtube.com/watch?v={video_id}",
                "snippet": snippet.get("description", ""),
                "thumbnail": thumbnail,
            })

        scores = self._scorer.score_items(query, raw)
        return [
            NormalizedResult(
                title=entry["title"],
                url=canonical_url(entry["url"]),
                source_provider=self.provider_id,
                display_domain="youtube.com",
                thumbnail_url=entry["thumbnail"],
                snippet=entry["snippet"],
                content_type=ContentType.VIDEO,
                relevance_score=score,
            )
            for entry, score in zip(raw, scores)
        ]


class DuckDuckGoAdapter(ProviderAdapter):
    """DuckDuckGo 검색 어댑터

    - duckduckgo_search 라이브러리 사용, API 키 불필요
    - 스로틀링이 감지되면 5분간 사용 불가
    """

    THROTTLE_SECONDS = 300
    TIMELIMITS = {
        "last24h": "d", "d1": "d",
        "lastWeek": "w", "w1": "w",
        "lastMonth": "m", "m1": "m",
        "lastYear": "y", "y1": "y",
    }
    supported_types = frozenset([SearchType.TEXT, SearchType.HASHTAG])
    requires_credentials = False

    def __init__(self, config: Optional[SearchConfig] = None, session: Optional[requests.Session] = None):
        super().__init__(config, session)
        self._throttled_until: float = 0

    @property
    def provider_id(self) -> str:
        return "duckduckgo"

    @property
    def name(self) -> str:
        return "DuckDuckGo"

    def is_configured(self) -> bool:
        return True

    def is_available(self) -> bool:
        """스로틀링 상태면 사용 불가"""
        return time.time() >= self._throttled_until

    def reset_throttle(self) -> None:
        """스로틀링 상태 초기화"""
        self._throttled_until = 0
        self._last_error = None

    def build_query(self, search_type: SearchType, query: str, params: SearchParameters) -> str:
        if search_type == SearchType.HASHTAG and not query.startswith("#"):
            query = f"#{query}"
        if params.exact_match:
            query = f'"{query}"'
        if params.site_filter:
            query += " " + " OR ".join(f"site:{s}" for s in sorted(params.site_filter))
        for site in sorted(params.exclude_sites):
            query += f" -site:{site}"
        if params.file_type:
            query += f" filetype:{params.file_type}"
        return query

    def _search(self, search_type, query, params, max_results):
        try:
            from duckduckgo_search import DDGS
        except ImportError as e:
            raise ConfigurationError(self.provider_id, "duckduckgo_search 라이브러리가 필요합니다.") from e

        keywords = self.build_query(search_type, query, params)
        safesearch = {ContentFilter.HIGH: "on", ContentFilter.OFF: "off"}.get(params.content_filter, "moderate")
        region = "wt-wt"
        if params.country:
            region = f"{params.country.lower()}-{(params.language or 'en').lower()}"

        try:
            with DDGS(timeout=int(self._config.request_timeout)) as ddgs:
                raw_results = list(ddgs.text(
                    keywords,
                    region=region,
                    safesearch=safesearch,
                    timelimit=self.TIMELIMITS.get(params.date_restrict or ""),
                    max_results=max_results,
                ) or [])
        except Exception as e:
            error_msg = str(e)
            # 스로틀링 감지 (RatelimitException 등)
            if "ratelimit" in error_msg.lower().replace(" ", "") or "429" in error_msg:
                self._throttled_until = time.time() + self.THROTTLE_SECONDS
                logger.warning(f"DuckDuckGo 스로틀링 감지, {self.THROTTLE_SECONDS}초간 비활성화")
            raise ProviderError(self.provider_id, f"DuckDuckGo 검색 실패: {error_msg}") from e

        scores = self._scorer.score_items(query, raw_results, snippet_key="body", url_key="href")
        results = []
        for item, score in zip(raw_results, scores):
            link = item.get("href")
            if not link:
                continue
            domain = display_domain(link)
            results.append(NormalizedResult(
                title=item.get("title", ""),
                url=canonical_url(link),
                source_provider=self.provider_id,
                display_domain=domain,
                snippet=item.get("body", ""),
                content_type=classify_domain(domain),
                relevance_score=score,
            ))
        return results[:max_results]
