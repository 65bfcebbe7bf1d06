from fastapi import Depends, HTTPException, status, Request, Response
from datetime import datetime, timedelta
from collections import defaultdict, deque
from typing import Dict, Deque, Optional
from app.config import Config, RateLimitConfig, get_config
from app.logging_config import logger

RATE_LIMIT_MESSAGE = "Too many requests from this IP, please try again later."


def get_client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RateLimiter:
    """메모리 기반 IP별 Rate Limiter (슬라이딩 윈도우)"""

    def __init__(self):
        # IP별 요청 시간 기록
        self.requests: Dict[str, Deque[datetime]] = defaultdict(deque)
        self._last_sweep: Optional[datetime] = None

    def _clean_old_requests(self, client_ip: str, window: timedelta, now: datetime):
        """윈도우 밖의 요청 기록 제거. 비어 있는 IP 항목은 삭제"""
        history = self.requests.get(client_ip)
        if history is None:
            return
        while history and (now - history[0]) >= window:
            history.popleft()
        if not history:
            del self.requests[client_ip]

    def _sweep_idle_clients(self, window: timedelta, now: datetime):
        """윈도우 안에 요청이 없는 IP 항목 전체 삭제 (윈도우당 최대 한 번)"""
        if self._last_sweep is not None and (now - self._last_sweep) < window:
            return
        self._last_sweep = now
        idle = [ip for ip, history in self.requests.items() if not history or (now - history[-1]) >= window]
        for ip in idle:
            del self.requests[ip]

    def check_rate_limit(self, client_ip: str, settings: RateLimitConfig, now: Optional[datetime] = None) -> None:
        """
        Rate Limit 검증

        Args:
            client_ip: 요청 IP
            settings: 윈도우 길이 및 최대 요청 수
            now: 현재 시각 (테스트용)

        Raises:
            HTTPException: Rate limit 초과 시 429 Too Many Requests
        """
        now = now or datetime.now()
        window = timedelta(seconds=settings.window_seconds)
        self._sweep_idle_clients(window, now)
        self._clean_old_requests(client_ip, window, now)

        if len(self.requests.get(client_ip, ())) >= settings.max_requests:
            logger.warning(
                f"Rate limit exceeded: IP: {client_ip}, "
                f"Max: {settings.max_requests} per {settings.window_seconds}s"
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=RATE_LIMIT_MESSAGE
            )

        # 요청 기록 추가
        self.requests[client_ip].append(now)

    def get_remaining_requests(self, client_ip: str, settings: RateLimitConfig) -> int:
        """남은 요청 횟수 반환"""
        now = datetime.now()
        self._clean_old_requests(client_ip, timedelta(seconds=settings.window_seconds), now)
        return max(0, settings.max_requests - len(self.requests.get(client_ip, ())))

    def reset(self) -> None:
        self.requests.clear()
        self._last_sweep = None


# 전역 Rate Limiter 인스턴스
rate_limiter = RateLimiter()


async def enforce_rate_limit(request: Request, response: Response, settings: Config = Depends(get_config)) -> None:
    """라우트 의존성: 요청 IP 기준 Rate Limit 적용

    async로 선언해 이벤트 루프 스레드에서만 RateLimiter 상태를 변경한다.
    """
    client_ip = get_client_ip(request)
    rate_limiter.check_rate_limit(client_ip, settings.rate_limit)
    response.headers["X-RateLimit-Limit"] = str(settings.rate_limit.max_requests)
    response.headers["X-RateLimit-Remaining"] = str(rate_limiter.get_remaining_requests(client_ip, settings.rate_limit))
