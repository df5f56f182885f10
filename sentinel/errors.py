"""
검색 예외 정의

- ConfigurationError: 자격 증명 누락/오류 (재시도하지 않음)
- ProviderError: 네트워크 오류, 타임아웃, 비정상 응답 등 일시적 실패
- NoProvidersAvailable: 모든 공급자가 비활성 또는 할당량 초과
- AllProvidersFailed: 시도한 모든 공급자가 실패
- UsageLimitExceeded: 사용자 구독 등급별 검색 한도 초과
"""

from typing import List, Optional


class SearchError(Exception):
    """검색 관련 예외의 기본 클래스"""

    retryable: bool = False


class ConfigurationError(SearchError):
    """공급자 자격 증명이 없거나 잘못된 경우"""

    def __init__(self, provider_id: str, message: str):
        self.provider_id = provider_id
        super().__init__(f"[{provider_id}] {message}")


class ProviderError(SearchError):
    """공급자 호출 실패 (일시적)"""

    retryable = True

    def __init__(self, provider_id: str, message: str, status_code: Optional[int] = None):
        self.provider_id = provider_id
        self.status_code = status_code
        super().__init__(f"[{provider_id}] {message}")


class NoProvidersAvailable(SearchError):
    """사용 가능한 공급자가 없음. 잠시 후 재시도 가능"""

    retryable = True

    def __init__(self, message: str = "사용 가능한 검색 공급자가 없습니다. 잠시 후 다시 시도하세요."):
        super().__init__(message)


class AllProvidersFailed(SearchError):
    """모든 공급자가 실패함. last_error에 마지막 원인을 보관"""

    retryable = True

    def __init__(self, last_error: Exception, errors: Optional[List[str]] = None):
        self.last_error = last_error
        self.errors = errors or [str(last_error)]
        super().__init__(f"모든 검색 공급자 실패: {'; '.join(self.errors)}")


class UsageLimitExceeded(SearchError):
    """사용자별 검색 한도 초과"""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message)
