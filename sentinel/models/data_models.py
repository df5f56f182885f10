"""
데이터 모델 정의

- SearchType / SearchParameters / SearchRequest: 검색 요청 단위
- NormalizedResult / CombinedResult: 공급자 공통 결과 형식
- ProviderQuota / CacheEntry / QueuedRequest: 내부 상태 레코드
- SearchConfig: 검색 오케스트레이터 설정
"""

import json
import os
from concurrent.futures import Future
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from dotenv import load_dotenv


class SearchType(str, Enum):
    """검색 유형"""
    TEXT = "text"
    HASHTAG = "hashtag"
    IMAGE = "image"
    VIDEO = "video"


class ContentFilter(str, Enum):
    """세이프서치 수준"""
    OFF = "off"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def _missing_(cls, value):
        # 공급자별 표기(strict, moderate, low)도 허용
        aliases = {"strict": cls.HIGH, "moderate": cls.MEDIUM, "low": cls.OFF}
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None


class SortBy(str, Enum):
    RELEVANCE = "relevance"
    DATE = "date"


class SearchMode(str, Enum):
    """이미지 검색 매칭 모드"""
    RELAXED = "relaxed"
    STRICT = "strict"


class ContentType(str, Enum):
    """정규화된 결과의 콘텐츠 유형"""
    WEBSITE = "website"
    IMAGE = "image"
    SOCIAL = "social"
    VIDEO = "video"


# camelCase 입력 키 → 필드 이름
_CAMEL_TO_FIELD = {
    "exactMatch": "exact_match",
    "dateRestrict": "date_restrict",
    "contentFilter": "content_filter",
    "siteFilter": "site_filter",
    "excludeSites": "exclude_sites",
    "fileType": "file_type",
    "sortBy": "sort_by",
    "maxResults": "max_results",
    "similarityThreshold": "similarity_threshold",
    "searchMode": "search_mode",
    "includeSimilarColors": "include_similar_colors",
    "includePartialMatches": "include_partial_matches",
    "minSize": "min_size",
    "imageType": "image_type",
    "imageColorType": "image_color_type",
    "dominantColor": "dominant_color",
}

_ENUM_FIELDS = {
    "content_filter": ContentFilter,
    "sort_by": SortBy,
    "search_mode": SearchMode,
}

_SET_FIELDS = ("site_filter", "exclude_sites")


@dataclass(frozen=True)
class SearchParameters:
    """검색 파라미터

    두 파라미터 집합은 canonical_json()이 같을 때 캐시 관점에서 동일하다.
    기본값과 같은 항목은 직렬화에서 제외되므로 {}와 기본값을 명시한
    파라미터는 같은 키를 만든다.
    """
    exact_match: bool = False
    date_restrict: Optional[str] = None
    content_filter: Optional[ContentFilter] = None
    site_filter: FrozenSet[str] = field(default_factory=frozenset)
    exclude_sites: FrozenSet[str] = field(default_factory=frozenset)
    language: Optional[str] = None
    country: Optional[str] = None
    file_type: Optional[str] = None
    rights: Optional[str] = None
    sort_by: SortBy = SortBy.RELEVANCE
    max_results: Optional[int] = None
    # 이미지 검색 전용
    similarity_threshold: Optional[float] = None
    search_mode: SearchMode = SearchMode.RELAXED
    include_similar_colors: bool = True
    include_partial_matches: bool = True
    min_size: Optional[str] = None
    image_type: Optional[str] = None
    image_color_type: Optional[str] = None
    dominant_color: Optional[str] = None

    def __post_init__(self):
        # frozen이므로 정규화는 object.__setattr__로 수행
        for name, enum_cls in _ENUM_FIELDS.items():
            value = getattr(self, name)
            if value is not None and not isinstance(value, enum_cls):
                object.__setattr__(self, name, enum_cls(value))
        for name in _SET_FIELDS:
            value = getattr(self, name) or ()
            if isinstance(value, str):
                value = (value,)
            object.__setattr__(
                self, name, frozenset(s.strip().lower() for s in value if s and s.strip())
            )
        if self.similarity_threshold is not None and not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold는 0.0 ~ 1.0 범위여야 합니다.")
        if self.max_results is not None and self.max_results < 1:
            raise ValueError("max_results는 1 이상이어야 합니다.")

    def to_dict(self) -> Dict[str, Any]:
        """기본값이 아닌 항목만 딕셔너리로 변환"""
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _SET_FIELDS:
                if value:
                    data[f.name] = sorted(value)
                continue
            if value is None or value == f.default:
                continue
            data[f.name] = value.value if isinstance(value, Enum) else value
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SearchParameters":
        """딕셔너리에서 객체 생성

        camelCase와 snake_case 키를 모두 받으며 알 수 없는 키는 무시한다.
        """
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            name = _CAMEL_TO_FIELD.get(key, key)
            if name not in known or value is None:
                continue
            kwargs[name] = value
        return cls(**kwargs)

    def canonical_json(self) -> str:
        """키 정렬된 JSON 직렬화 (캐시 키용)"""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    def with_max_results(self, max_results: int) -> "SearchParameters":
        return replace(self, max_results=max_results)


@dataclass(frozen=True)
class SearchRequest:
    """하나의 검색 작업 단위"""
    type: SearchType
    params: SearchParameters = field(default_factory=SearchParameters)
    query_text: Optional[str] = None
    image_ref: Optional[str] = None

    def __post_init__(self):
        if self.type == SearchType.IMAGE:
            if not self.image_ref:
                raise ValueError("이미지 검색에는 image_ref가 필요합니다.")
        elif not (self.query_text and self.query_text.strip()):
            raise ValueError("텍스트 검색어가 비어 있습니다.")

    @property
    def query(self) -> str:
        """공급자에 전달할 검색어 (이미지 검색이면 이미지 URL)"""
        if self.type == SearchType.IMAGE:
            return self.image_ref or ""
        return self.query_text or ""


@dataclass
class NormalizedResult:
    """공급자 공통 검색 결과

    url은 정규화된 URL이며 중복 제거 키로 사용된다.
    """
    title: str
    url: str
    source_provider: str
    display_domain: str = ""
    thumbnail_url: str = ""
    snippet: str = ""
    content_type: ContentType = ContentType.WEBSITE
    relevance_score: float = 0.0
    source: str = "live"

    def __post_init__(self):
        self.relevance_score = min(1.0, max(0.0, float(self.relevance_score)))

    @property
    def is_mock(self) -> bool:
        return self.source == "mock"

    def to_dict(self) -> dict:
        """딕셔너리로 변환"""
        return {
            "title": self.title,
            "url": self.url,
            "display_domain": self.display_domain,
            "thumbnail_url": self.thumbnail_url,
            "snippet": self.snippet,
            "content_type": self.content_type.value,
            "relevance_score": self.relevance_score,
            "source_provider": self.source_provider,
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NormalizedResult":
        """딕셔너리에서 객체 생성"""
        return cls(
            title=data["title"],
            url=data["url"],
            source_provider=data["source_provider"],
            display_domain=data.get("display_domain", ""),
            thumbnail_url=data.get("thumbnail_url", ""),
            snippet=data.get("snippet", ""),
            content_type=ContentType(data.get("content_type", "website")),
            relevance_score=data.get("relevance_score", 0.0),
            source=data.get("source", "live"),
        )


@dataclass
class CombinedResult:
    """여러 공급자 결과를 병합한 최종 결과"""
    query: str
    search_type: SearchType
    items: List[NormalizedResult] = field(default_factory=list)
    providers: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    source: str = "multi-engine"
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_mock(self) -> bool:
        """결과 중 하나라도 합성 데이터면 True"""
        return any(item.is_mock for item in self.items)

    def copy(self) -> "CombinedResult":
        """목록 필드를 새로 만든 얕은 복사본 (항목 객체는 공유)"""
        return replace(self, items=list(self.items), providers=list(self.providers), errors=list(self.errors))

    def to_dict(self) -> dict:
        """딕셔너리로 변환"""
        return {
            "query": self.query,
            "search_type": self.search_type.value,
            "items": [item.to_dict() for item in self.items],
            "providers": list(self.providers),
            "errors": list(self.errors),
            "source": self.source,
            "created_at": self.created_at.isoformat(),
            "is_mock": self.is_mock,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CombinedResult":
        """딕셔너리에서 객체 생성"""
        return cls(
            query=data["query"],
            search_type=SearchType(data["search_type"]),
            items=[NormalizedResult.from_dict(i) for i in data.get("items", [])],
            providers=list(data.get("providers", [])),
            errors=list(data.get("errors", [])),
            source=data.get("source", "multi-engine"),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(),
        )


@dataclass
class ProviderQuota:
    """공급자별 사용량 레코드 (QuotaManager만 변경한다)"""
    provider_id: str
    daily_limit: int
    per_minute_limit: int
    daily_usage: int = 0
    daily_reset_at: float = 0.0
    minute_usage: int = 0
    minute_reset_at: float = 0.0

    @property
    def daily_remaining(self) -> int:
        return max(0, self.daily_limit - self.daily_usage)


@dataclass
class CacheEntry:
    """캐시 항목"""
    key: str
    payload: Any
    created_at: float
    last_accessed_at: float
    ttl: float
    provider_source: Optional[str] = None
    cost_estimate: Optional[float] = None
    hit_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


@dataclass
class QueuedRequest:
    """할당량 초과로 대기 중인 요청"""
    execute: Callable[[], Any]
    provider_id: Optional[str] = None
    user_id: Optional[str] = None
    priority: bool = False
    future: Future = field(default_factory=Future)


# 공급자별 기본 (일일 한도, 분당 한도)
DEFAULT_PROVIDER_LIMITS: Dict[str, Tuple[int, int]] = {
    "google": (10000, 60),
    "bing": (3000, 50),
    "youtube": (20000, 60),
    "duckduckgo": (2000, 20),
}

# 공급자별 기본 우선순위 (높을수록 먼저 시도)
DEFAULT_PROVIDER_PRIORITIES: Dict[str, int] = {
    "google": 10,
    "bing": 8,
    "youtube": 5,
    "duckduckgo": 3,
}

# 요청당 예상 비용 (USD)
DEFAULT_COST_PER_REQUEST: Dict[str, float] = {
    "google": 0.005,
    "bing": 0.003,
    "youtube": 0.0,
    "duckduckgo": 0.0,
}


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class SearchConfig:
    """검색 오케스트레이터 설정

    - 공급자 자격 증명 및 데모 모드
    - 공급자별 할당량, 우선순위, 요청 비용
    - 캐시 크기 및 계층형 TTL
    - 큐 간격, HTTP 타임아웃, 페이지네이션 한도
    """
    google_api_key: Optional[str] = None
    google_cse_id: Optional[str] = None
    bing_api_key: Optional[str] = None
    youtube_api_key: Optional[str] = None
    demo_mode: bool = False
    primary_provider: str = "google"
    provider_limits: Dict[str, Tuple[int, int]] = field(
        default_factory=lambda: dict(DEFAULT_PROVIDER_LIMITS)
    )
    provider_priorities: Dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_PROVIDER_PRIORITIES)
    )
    cost_per_request: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_COST_PER_REQUEST)
    )
    cache_max_size: int = 100
    primary_cache_ttl: int = 2 * 60 * 60
    default_cache_ttl: int = 30 * 60
    cache_cleanup_interval: int = 5 * 60
    quota_reset_interval: int = 60
    queue_delay: float = 0.1
    queue_wait_timeout: float = 60.0
    request_timeout: float = 30.0
    page_size: int = 10
    max_pages: int = 3
    max_results_per_engine: int = 20
    combined_results_limit: int = 50

    def to_dict(self) -> dict:
        """딕셔너리로 변환 (API 키는 마스킹)"""
        def mask(value: Optional[str]) -> Optional[str]:
            return "***" if value else None

        return {
            "google_api_key": mask(self.google_api_key),
            "google_cse_id": self.google_cse_id,
            "bing_api_key": mask(self.bing_api_key),
            "youtube_api_key": mask(self.youtube_api_key),
            "demo_mode": self.demo_mode,
            "primary_provider": self.primary_provider,
            "provider_limits": {k: list(v) for k, v in self.provider_limits.items()},
            "provider_priorities": dict(self.provider_priorities),
            "cost_per_request": dict(self.cost_per_request),
            "cache_max_size": self.cache_max_size,
            "primary_cache_ttl": self.primary_cache_ttl,
            "default_cache_ttl": self.default_cache_ttl,
            "cache_cleanup_interval": self.cache_cleanup_interval,
            "quota_reset_interval": self.quota_reset_interval,
            "queue_delay": self.queue_delay,
            "queue_wait_timeout": self.queue_wait_timeout,
            "request_timeout": self.request_timeout,
            "page_size": self.page_size,
            "max_pages": self.max_pages,
            "max_results_per_engine": self.max_results_per_engine,
            "combined_results_limit": self.combined_results_limit,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SearchConfig":
        """딕셔너리에서 객체 생성"""
        default = cls()
        limits = data.get("provider_limits")
        return cls(
            google_api_key=data.get("google_api_key"),
            google_cse_id=data.get("google_cse_id"),
            bing_api_key=data.get("bing_api_key"),
            youtube_api_key=data.get("youtube_api_key"),
            demo_mode=data.get("demo_mode", False),
            primary_provider=data.get("primary_provider", default.primary_provider),
            provider_limits=(
                {k: tuple(v) for k, v in limits.items()} if limits else default.provider_limits
            ),
            provider_priorities=data.get("provider_priorities", default.provider_priorities),
            cost_per_request=data.get("cost_per_request", default.cost_per_request),
            cache_max_size=data.get("cache_max_size", default.cache_max_size),
            primary_cache_ttl=data.get("primary_cache_ttl", default.primary_cache_ttl),
            default_cache_ttl=data.get("default_cache_ttl", default.default_cache_ttl),
            cache_cleanup_interval=data.get("cache_cleanup_interval", default.cache_cleanup_interval),
            quota_reset_interval=data.get("quota_reset_interval", default.quota_reset_interval),
            queue_delay=data.get("queue_delay", default.queue_delay),
            queue_wait_timeout=data.get("queue_wait_timeout", default.queue_wait_timeout),
            request_timeout=data.get("request_timeout", default.request_timeout),
            page_size=data.get("page_size", default.page_size),
            max_pages=data.get("max_pages", default.max_pages),
            max_results_per_engine=data.get("max_results_per_engine", default.max_results_per_engine),
            combined_results_limit=data.get("combined_results_limit", default.combined_results_limit),
        )

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "SearchConfig":
        """환경 변수(.env 포함)에서 설정 생성"""
        load_dotenv(dotenv_path)
        config = cls(
            google_api_key=os.getenv("GOOGLE_API_KEY") or None,
            google_cse_id=os.getenv("GOOGLE_CSE_ID") or None,
            bing_api_key=os.getenv("BING_API_KEY") or None,
            youtube_api_key=os.getenv("YOUTUBE_API_KEY") or None,
            demo_mode=_env_flag(os.getenv("SENTINEL_DEMO_MODE")),
        )
        max_size = os.getenv("SENTINEL_CACHE_MAX_SIZE")
        if max_size:
            config.cache_max_size = int(max_size)
        return config
