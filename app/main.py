# app/main.py

# ------------------------
# 환경 변수 로드
# ------------------------
from dotenv import load_dotenv
load_dotenv()

import logging

# ------------------------
# FastAPI, CORS 미들웨어 import
# ------------------------
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.errors import GameError

# ------------------------
# 라우터 import
# ------------------------
from app.routers import game as game_router
from app.routers import rounds as rounds_router
from app.routers import lives as lives_router
from app.routers import payouts as payouts_router

logger = logging.getLogger(__name__)

# ------------------------
# 1) FastAPI 앱 생성
# ------------------------
app = FastAPI(title="Trivia Round API")

# ------------------------
# 2) CORS 미들웨어 추가
#    - OPTIONS preflight 포함
#    - 허용 도메인은 CORS_ALLOWED_ORIGINS
# ------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=False,  # 쿠키 안 쓰면 False
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# ------------------------
# 3) 에러 응답: 항상 {error, code}
# ------------------------
@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    if exc.status_code >= 500:
        logger.error("[API] %s %s -> %s %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else "Invalid request body"
    return JSONResponse(status_code=400, content={"error": message, "code": "VALIDATION_ERROR"})


@app.exception_handler(SQLAlchemyError)
async def db_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("[API] database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "code": "INTERNAL_ERROR"})

# ------------------------
# 4) 라우터 등록
# ------------------------
app.include_router(game_router.router)
app.include_router(rounds_router.router)
app.include_router(lives_router.router)
app.include_router(payouts_router.router)

# ------------------------
# 5) 개발용 테이블 생성 (AUTO_CREATE_TABLES=true)
# ------------------------
@app.on_event("startup")
def create_tables():
    if not settings.auto_create_tables:
        return
    from app.db.base import Base, engine
    from app.models import registry  # noqa: F401  모든 모델 등록
    Base.metadata.create_all(bind=engine)
    logger.info("[DB] tables ensured")

# ------------------------
# 6) Root 엔드포인트 (health check)
# ------------------------
@app.get("/")
def root():
    return {"ok": True}
