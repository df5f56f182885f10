"""
Unit test: ProviderAdapter 요청 생성 및 응답 정규화

- Google CSE 쿼리 파라미터, 페이지네이션, 부분 결과
- Bing 헤더/파라미터 매핑
- YouTube, DuckDuckGo 정규화
- 자격 증명 누락 시 ConfigurationError, 데모 모드 합성 결과
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from sentinel.errors import ConfigurationError, ProviderError
from sentinel.models.data_models import (
    ContentType,
    SearchConfig,
    SearchMode,
    SearchParameters,
    SearchType,
)
from sentinel.search.adapters import (
    BingSearchAdapter,
    DuckDuckGoAdapter,
    GoogleCSEAdapter,
    YouTubeAdapter,
    image_query_from_ref,
)


GOOGLE_KEY = "g" * 39
BING_KEY = "b" * 32
YOUTUBE_KEY = "y" * 39


def make_response(payload=None, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    if status_code >= 400:
        error = requests.HTTPError(f"{status_code} error")
        error.response = response
        response.raise_for_status.side_effect = error
    return response


def google_items(start, count):
    return [
        {
            "title": f"Acme result {start + i}",
            "link": f"https://site{start + i}.example.com/page",
            "displayLink": f"site{start + i}.example.com",
            "snippet": "about acme",
        }
        for i in range(count)
    ]


def google_config(**overrides):
    return SearchConfig(google_api_key=GOOGLE_KEY, google_cse_id="cse-id", **overrides)


class TestGoogleCSEAdapter:
    """Google CSE 어댑터 테스트"""

    def test_build_params_for_text_search(self):
        adapter = GoogleCSEAdapter(google_config(), session=MagicMock())
        params = SearchParameters(
            exact_match=True,
            date_restrict="w1",
            content_filter="high",
            site_filter=frozenset(["example.com", "acme.org"]),
            language="en",
            country="us",
            file_type="pdf",
            rights="cc_publicdomain",
            sort_by="date",
        )

        query_params = adapter.build_params(SearchType.TEXT, "acme", params)

        assert query_params["key"] == GOOGLE_KEY
        assert query_params["cx"] == "cse-id"
        assert query_params["q"] == "acme"
        assert query_params["exactTerms"] == "acme"
        assert query_params["dateRestrict"] == "w1"
        assert query_params["safe"] == "active"
        assert query_params["siteSearch"] == "acme.org|example.com"
        assert query_params["siteSearchFilter"] == "i"
        assert query_params["lr"] == "lang_en"
        assert query_params["cr"] == "countryUS"
        assert query_params["fileType"] == "pdf"
        assert query_params["rights"] == "cc_publicdomain"
        assert query_params["sort"] == "date"
        assert "searchType" not in query_params

    def test_exclude_sites_used_only_without_site_filter(self):
        adapter = GoogleCSEAdapter(google_config(), session=MagicMock())

        excluded = adapter.build_params(
            SearchType.TEXT, "acme", SearchParameters(exclude_sites=frozenset(["spam.com"]))
        )
        both = adapter.build_params(
            SearchType.TEXT,
            "acme",
            SearchParameters(site_filter=frozenset(["good.com"]), exclude_sites=frozenset(["spam.com"])),
        )

        assert excluded["siteSearch"] == "spam.com"
        assert excluded["siteSearchFilter"] == "e"
        assert both["siteSearch"] == "good.com"
        assert both["siteSearchFilter"] == "i"

    def test_build_params_for_image_search(self):
        adapter = GoogleCSEAdapter(google_config(), session=MagicMock())
        params = SearchParameters(image_type="photo", dominant_color="blue", min_size="large")

        query_params = adapter.build_params(
            SearchType.IMAGE, "https://cdn.example.com/uploads/red-sports-car.jpg", params
        )

        assert query_params["searchType"] == "image"
        assert query_params["q"] == "red sports car"
        assert query_params["imgType"] == "photo"
        assert query_params["imgDominantColor"] == "blue"
        assert query_params["imgSize"] == "large"

    def test_hashtag_query_prefixed(self):
        adapter = GoogleCSEAdapter(google_config(), session=MagicMock())
        query_params = adapter.build_params(SearchType.HASHTAG, "acme", SearchParameters())
        assert query_params["q"] == "#acme"

    def test_paginates_in_pages_of_ten(self):
        session = MagicMock()
        session.get.side_effect = [
            make_response({"items": google_items(0, 10)}),
            make_response({"items": google_items(10, 10)}),
            make_response({"items": google_items(20, 10)}),
        ]
        adapter = GoogleCSEAdapter(google_config(max_results_per_engine=30), session=session)

        results = adapter.execute("text", "acme", SearchParameters(max_results=30))

        assert len(results) == 30
        starts = [call.kwargs["params"]["start"] for call in session.get.call_args_list]
        assert starts == ["1", "11", "21"]
        assert all(call.kwargs["timeout"] == 30.0 for call in session.get.call_args_list)

    def test_stops_after_short_page(self):
        session = MagicMock()
        session.get.side_effect = [make_response({"items": google_items(0, 4)})]
        adapter = GoogleCSEAdapter(google_config(), session=session)

        results = adapter.execute("text", "acme", SearchParameters(max_results=20))

        assert len(results) == 4
        assert session.get.call_count == 1

    def test_later_page_failure_keeps_partial_results(self):
        session = MagicMock()
        session.get.side_effect = [
            make_response({"items": google_items(0, 10)}),
            make_response(status_code=500),
        ]
        adapter = GoogleCSEAdapter(google_config(), session=session)

        results = adapter.execute("text", "acme", SearchParameters(max_results=20))

        assert len(results) == 10

    def test_repeated_urls_across_pages_are_dropped(self):
        """다음 페이지가 같은 URL을 다시 돌려주면 한 번만 남김"""
        session = MagicMock()
        session.get.side_effect = [
            make_response({"items": google_items(0, 10)}),
            make_response({"items": google_items(5, 10)}),
        ]
        adapter = GoogleCSEAdapter(google_config(), session=session)

        results = adapter.execute("text", "acme", SearchParameters(max_results=20))

        assert len(results) == 15
        assert len({r.url for r in results}) == 15

    def test_first_page_failure_raises_provider_error(self):
        session = MagicMock()
        session.get.side_effect = [make_response(status_code=429)]
        adapter = GoogleCSEAdapter(google_config(), session=session)

        with pytest.raises(ProviderError) as exc_info:
            adapter.execute("text", "acme", SearchParameters())

        assert exc_info.value.status_code == 429
        assert adapter.last_error is not None

    def test_timeout_becomes_provider_error(self):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("timed out")
        adapter = GoogleCSEAdapter(google_config(), session=session)

        with pytest.raises(ProviderError):
            adapter.execute("text", "acme", SearchParameters())

    def test_results_normalized_and_scored(self):
        session = MagicMock()
        session.get.return_value = make_response({"items": [
            {"title": "Acme official", "link": "https://WWW.Acme.com/about/", "displayLink": "www.acme.com",
             "snippet": "acme company", "pagemap": {"cse_thumbnail": [{"src": "https://img/t.png"}]}},
            {"title": "Other", "link": "https://instagram.com/acme", "displayLink": "instagram.com"},
        ]})
        adapter = GoogleCSEAdapter(google_config(), session=session)

        results = adapter.execute("text", "acme", SearchParameters())

        assert results[0].url == "https://www.acme.com/about"
        assert results[0].thumbnail_url == "https://img/t.png"
        assert results[0].source_provider == "google"
        assert results[0].source == "live"
        assert results[0].relevance_score == 1.0
        assert results[1].content_type == ContentType.SOCIAL
        assert 0.0 <= results[1].relevance_score <= 1.0

    def test_strict_image_search_raises_similarity_floor(self):
        items = [
            {"title": f"img {i}", "link": f"https://img{i}.example.com/a.jpg",
             "image": {"contextLink": f"https://img{i}.example.com", "thumbnailLink": "t"}}
            for i in range(10)
        ]
        session = MagicMock()
        session.get.return_value = make_response({"items": items})
        adapter = GoogleCSEAdapter(google_config(), session=session)

        relaxed = adapter.execute(
            "image", "https://x.com/photo.jpg", SearchParameters(similarity_threshold=0.5, max_results=10)
        )
        strict = adapter.execute(
            "image", "https://x.com/photo.jpg",
            SearchParameters(similarity_threshold=0.5, search_mode=SearchMode.STRICT, max_results=10),
        )

        assert len(relaxed) == 10
        assert all(r.relevance_score >= 0.8 for r in strict)
        assert len(strict) < len(relaxed)
        assert all(r.content_type == ContentType.IMAGE for r in strict)

    def test_missing_credentials_raise_configuration_error(self):
        session = MagicMock()
        adapter = GoogleCSEAdapter(SearchConfig(), session=session)

        assert not adapter.is_configured()
        with pytest.raises(ConfigurationError) as exc_info:
            adapter.execute("text", "acme", SearchParameters())

        assert "GOOGLE_API_KEY" in str(exc_info.value)
        session.get.assert_not_called()

    def test_short_api_key_is_not_configured(self):
        adapter = GoogleCSEAdapter(SearchConfig(google_api_key="short", google_cse_id="cx"), session=MagicMock())
        assert not adapter.is_configured()

    def test_demo_mode_returns_tagged_mock_results(self):
        session = MagicMock()
        adapter = GoogleCSEAdapter(SearchConfig(demo_mode=True), session=session)

        first = adapter.execute("text", "acme", SearchParameters(max_results=5))
        second = adapter.execute("text", "acme", SearchParameters(max_results=5))

        assert len(first) == 5
        assert all(r.is_mock for r in first)
        assert first == second
        session.get.assert_not_called()

    def test_unsupported_type_rejected(self):
        adapter = GoogleCSEAdapter(google_config(), session=MagicMock())
        assert not adapter.supports("video")
        with pytest.raises(ProviderError):
            adapter.execute("video", "acme", SearchParameters())


class TestBingSearchAdapter:
    """Bing 어댑터 테스트"""

    @pytest.mark.parametrize("content_filter,expected", [
        ("high", "Strict"),
        ("strict", "Strict"),
        ("medium", "Moderate"),
        ("off", "Off"),
        (None, "Moderate"),
    ])
    def test_safe_search_mapping(self, content_filter, expected):
        params = SearchParameters(content_filter=content_filter)
        assert BingSearchAdapter.map_safe_search(params.content_filter) == expected

    @pytest.mark.parametrize("image_type,expected", [
        ("photo", "Photo"),
        ("clipart", "Clipart"),
        ("lineart", "Line"),
        ("animated", "AnimatedGif"),
        ("gif", "AnimatedGif"),
        ("face", "All"),
        (None, "All"),
    ])
    def test_image_type_mapping(self, image_type, expected):
        assert BingSearchAdapter.map_image_type(image_type) == expected

    def test_web_search_request_and_normalization(self):
        session = MagicMock()
        session.get.return_value = make_response({"webPages": {"value": [
            {"name": "Acme Inc", "url": "https://acme.com/", "snippet": "acme"},
            {"name": "News", "url": "https://news.example.com/acme"},
        ]}})
        adapter = BingSearchAdapter(SearchConfig(bing_api_key=BING_KEY), session=session)

        results = adapter.execute(
            "hashtag", "acme",
            SearchParameters(exclude_sites=frozenset(["spam.com"]), date_restrict="lastWeek"),
        )

        call = session.get.call_args
        assert call.args[0] == "https://api.bing.microsoft.com/v7.0/search"
        assert call.kwargs["headers"]["Ocp-Apim-Subscription-Key"] == BING_KEY
        assert call.kwargs["params"]["q"] == "#acme -site:spam.com"
        assert call.kwargs["params"]["mkt"] == "en-US"
        assert call.kwargs["params"]["safeSearch"] == "Moderate"
        assert call.kwargs["params"]["freshness"] == "Week"
        assert call.kwargs["params"]["offset"] == "0"
        assert [r.url for r in results] == ["https://acme.com", "https://news.example.com/acme"]
        assert all(r.source_provider == "bing" for r in results)

    def test_image_search_uses_image_endpoint(self):
        session = MagicMock()
        session.get.return_value = make_response({"value": [
            {"name": "photo", "contentUrl": "https://img.example.com/a.jpg",
             "hostPageUrl": "https://blog.example.com/post", "thumbnailUrl": "https://tse/t.jpg"},
        ]})
        adapter = BingSearchAdapter(SearchConfig(bing_api_key=BING_KEY), session=session)

        results = adapter.execute("image", "https://x.com/photo.jpg", SearchParameters(image_type="clipart"))

        call = session.get.call_args
        assert call.args[0].endswith("/images/search")
        assert call.kwargs["params"]["imageType"] == "Clipart"
        assert results[0].display_domain == "blog.example.com"
        assert results[0].content_type == ContentType.IMAGE

    def test_missing_key_raises_configuration_error(self):
        adapter = BingSearchAdapter(SearchConfig(), session=MagicMock())
        with pytest.raises(ConfigurationError):
            adapter.execute("text", "acme", SearchParameters())


class TestYouTubeAdapter:
    """YouTube 어댑터 테스트"""

    def test_video_results_normalized(self):
        session = MagicMock()
        session.get.return_value = make_response({"items": [
            {"id": {"videoId": "abc123"},
             "snippet": {"title": "Acme review", "description": "acme video",
                         "thumbnails": {"default": {"url": "https://i.ytimg.com/t.jpg"}}}},
            {"id": {"channelId": "ignored"}, "snippet": {"title": "channel"}},
        ]})
        adapter = YouTubeAdapter(SearchConfig(youtube_api_key=YOUTUBE_KEY), session=session)

        results = adapter.execute("video", "acme", SearchParameters(max_results=5))

        params = session.get.call_args.kwargs["params"]
        assert params["part"] == "snippet"
        assert params["type"] == "video"
        assert params["maxResults"] == "5"
        assert len(results) == 1
        assert results[0].url == "https://www.youtube.com/watch?v=abc123"
        assert results[0].content_type == ContentType.VIDEO

    def test_only_supports_video(self):
        adapter = YouTubeAdapter(SearchConfig(youtube_api_key=YOUTUBE_KEY), session=MagicMock())
        assert adapter.supports("video")
        assert not adapter.supports("text")


class TestDuckDuckGoAdapter:
    """DuckDuckGo 어댑터 테스트"""

    def test_results_normalized(self):
        ddgs = MagicMock()
        ddgs.__enter__.return_value = ddgs
        ddgs.text.return_value = [
            {"title": "Acme", "href": "https://acme.com/", "body": "acme body"},
            {"title": "No link"},
        ]
        with patch("duckduckgo_search.DDGS", return_value=ddgs):
            adapter = DuckDuckGoAdapter(SearchConfig())
            results = adapter.execute("text", "acme", SearchParameters(site_filter=frozenset(["acme.com"])))

        assert ddgs.text.call_args.args[0] == "acme site:acme.com"
        assert ddgs.text.call_args.kwargs["max_results"] == 20
        assert len(results) == 1
        assert results[0].url == "https://acme.com"
        assert results[0].snippet == "acme body"

    def test_rate_limit_throttles_adapter(self):
        ddgs = MagicMock()
        ddgs.__enter__.return_value = ddgs
        ddgs.text.side_effect = RuntimeError("Ratelimit 202")
        with patch("duckduckgo_search.DDGS", return_value=ddgs):
            adapter = DuckDuckGoAdapter(SearchConfig())
            with pytest.raises(ProviderError):
                adapter.execute("text", "acme", SearchParameters())

        assert not adapter.is_available()
        adapter.reset_throttle()
        assert adapter.is_available()

    def test_demo_mode_never_calls_network(self):
        with patch("duckduckgo_search.DDGS") as ddgs_cls:
            adapter = DuckDuckGoAdapter(SearchConfig(demo_mode=True))
            results = adapter.execute("text", "acme", SearchParameters(max_results=3))

        ddgs_cls.assert_not_called()
        assert len(results) == 3
        assert all(r.source == "mock" for r in results)


@pytest.mark.parametrize("image_ref,expected", [
    ("https://cdn.example.com/uploads/red_sports-car.png", "red sports car"),
    ("https://cdn.example.com/uploads/12345.jpg", "image similar to uploaded content"),
    ("https://cdn.example.com/", "image similar to uploaded content"),
])
def test_image_query_from_ref(image_ref, expected):
    assert image_query_from_ref(image_ref) == expected
