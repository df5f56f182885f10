"""
다중 엔진 검색 데모 스크립트

API 키 없이도 데모 모드로 실행해 전체 흐름을 확인할 수 있다.
.env에 GOOGLE_API_KEY, GOOGLE_CSE_ID 등을 넣으면 실제 공급자를 호출한다.
"""

import logging

from sentinel import SearchConfig, SearchError, SearchOrchestrator, SearchParameters

# 로깅 설정
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)


def print_result(result):
    print(f"\n검색 결과 ({len(result.items)}개, 공급자: {', '.join(result.providers)})")
    if result.is_mock:
        print("  ※ 데모 모드 합성 결과입니다 (실제 검색 결과 아님)")
    for i, item in enumerate(result.items, 1):
        print(f"\n  [{i}] {item.title}")
        print(f"      URL: {item.url}")
        print(f"      공급자: {item.source_provider} ({item.source})")
        print(f"      관련성 점수: {item.relevance_score:.2f}")
    if result.errors:
        print("\n공급자 오류:")
        for error in result.errors:
            print(f"  - {error}")


def demo_text_search(orchestrator: SearchOrchestrator):
    """텍스트 검색 데모 (두 번째 호출은 캐시에서 반환)"""
    print("\n" + "="*60)
    print("텍스트 검색 데모")
    print("="*60)

    params = SearchParameters(exact_match=True, max_results=10)
    try:
        print_result(orchestrator.search("text", "acme corporation", params))
        orchestrator.search("text", "ACME Corporation ", params)
    except SearchError as e:
        print(f"\n검색 실패: {e}")


def demo_image_search(orchestrator: SearchOrchestrator):
    """이미지 검색 데모"""
    print("\n" + "="*60)
    print("이미지 검색 데모")
    print("="*60)

    params = SearchParameters(similarity_threshold=0.7, image_type="photo")
    try:
        print_result(orchestrator.search("image", "https://example.com/uploads/profile-photo.jpg", params))
    except SearchError as e:
        print(f"\n검색 실패: {e}")


def print_stats(orchestrator: SearchOrchestrator):
    print("\n" + "="*60)
    print("공급자 상태")
    print("="*60)
    for provider_id, stats in orchestrator.get_provider_stats().items():
        quota = stats["quota"]
        print(
            f"  {stats['name']:<12} priority={stats['priority']:<3} "
            f"configured={stats['configured']!s:<5} "
            f"daily={quota.get('daily_usage', 0)}/{quota.get('daily_limit', '-')}"
        )

    cache_stats = orchestrator.get_cache_stats()
    print(f"\n캐시: {cache_stats['size']}개, 적중률 {cache_stats['hit_rate']:.0%}, "
          f"예상 비용 ${cache_stats['estimated_cost']:.3f}")


def main():
    """메인 함수"""
    config = SearchConfig.from_env()
    if not (config.google_api_key or config.bing_api_key):
        print("API 키가 없어 데모 모드로 실행합니다.")
        config.demo_mode = True

    with SearchOrchestrator.from_config(config) as orchestrator:
        demo_text_search(orchestrator)
        demo_image_search(orchestrator)
        print_stats(orchestrator)


if __name__ == "__main__":
    main()
