"""FastAPI WebRTC Signaling Server for two-party interpreted calls.

두 참가자를 하나의 통화 세션으로 묶고, 미디어 엔진 간 직접 연결을 위한
협상 메시지와 번역 자막을 중계합니다. 미디어 자체는 서버를 거치지 않습니다.

Components:
    - RoomManager: 두 명 정원의 룸, 입장 순서 기반 역할/언어 배정
    - SignalRelay: offer/answer/ICE candidate, 자막을 상대 피어에게 그대로 전달
    - SessionLifecycleMonitor: end-call / 연결 끊김 시 상대에게 user-left 한 번 알림

Endpoints:
    - WS  /ws               시그널링
    - GET /                 서버 상태
    - GET /api/health       레지스트리 통계
    - GET /api/rooms        룸 목록
    - GET /api/ice-servers  STUN/TURN 설정
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from modules import RoomManager, SignalRelay, SessionLifecycleMonitor
from modules.webrtc import ice_config
from routes import health_router, signaling_router, init_signaling_managers

# 환경변수 로드 (config/.env)
load_dotenv(Path(__file__).parent / "config" / ".env")

LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_RETENTION_DAYS = int(os.getenv("LOG_RETENTION_DAYS", "30"))
ENV = os.getenv("ENV", "development")


def setup_logging(log_dir: Path = LOG_DIR, level: str = LOG_LEVEL) -> Path:
    """콘솔 + 일자별 파일 로그를 설정하고 로그 파일 경로를 반환합니다."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"signaling_{datetime.now():%Y%m%d}.log"

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file, encoding="utf-8"),
        ]
    )
    return log_file


def purge_expired_logs(log_dir: Path = LOG_DIR, retention_days: int = LOG_RETENTION_DAYS) -> int:
    """보관 기간이 지난 signaling_YYYYMMDD.log 파일을 삭제합니다.

    Returns:
        삭제된 파일 수
    """
    if not log_dir.is_dir():
        return 0

    cutoff = datetime.now() - timedelta(days=retention_days)
    removed = 0
    for path in log_dir.glob("signaling_*.log"):
        try:
            stamp = datetime.strptime(path.stem.split("_", 1)[1], "%Y%m%d")
        except (IndexError, ValueError):
            continue
        if stamp < cutoff:
            try:
                path.unlink()
                removed += 1
            except OSError:
                continue
    return removed


log_file = setup_logging()
logger = logging.getLogger(__name__)
logger.info(f"로깅 초기화: level={LOG_LEVEL}, env={ENV}, file={log_file}")


# 프로세스 단위 레지스트리 (메모리 전용)
room_manager = RoomManager()
signal_relay = SignalRelay(room_manager)
lifecycle_monitor = SessionLifecycleMonitor(room_manager)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """기동 시 만료 로그 정리, 종료 시 남은 룸 수를 기록합니다.

    룸 상태는 메모리에만 있으므로 프로세스 종료와 함께 사라집니다.
    """
    removed = purge_expired_logs()
    if removed:
        logger.info(f"만료 로그 {removed}개 삭제 (보관 {LOG_RETENTION_DAYS}일)")
    logger.info("시그널링 서버 시작")

    yield

    logger.info(f"시그널링 서버 종료 (활성 룸 {len(room_manager.get_room_list())}개)")


app = FastAPI(title="Two-Party Interpreted Call Signaling Server", lifespan=lifespan)

# 로컬 네트워크 브라우저 클라이언트 허용
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^http://(localhost|127\.0\.0\.1|192\.168\.\d{1,3}\.\d{1,3}):\d+$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(signaling_router)
init_signaling_managers(room_manager, signal_relay, lifecycle_monitor)


@app.get("/")
async def root():
    return {"status": "ok", "service": "Two-Party Interpreted Call Signaling Server"}


@app.get("/api/rooms")
async def list_rooms():
    """활성 룸 목록 (room_name, peer_count, peers)."""
    return {"rooms": room_manager.get_room_list()}


@app.get("/api/ice-servers")
async def get_ice_servers():
    """클라이언트용 ICE 서버 설정.

    STUN 은 항상 포함하고, TURN 은 TURN_SERVER_URL / TURN_USERNAME /
    TURN_CREDENTIAL 이 모두 설정된 경우에만 포함합니다. 서버는 설정만
    전달하며 TURN 을 직접 제공하지 않습니다.
    """
    ice_servers = ice_config.as_ice_servers()
    logger.debug(f"ICE 서버 제공: {'STUN + TURN' if ice_config.has_turn_server else 'STUN only'}")
    return ice_servers


def main():
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")), log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
