from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

load_dotenv()

from config.config_database import engine, Base
from config.setting_database import get_settings
from routers import server_controller
from routers.server_controller import error_detail
from utils.exceptions import FieldValidationError

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# ===================== STARTUP / SHUTDOWN =====================
@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("✅ Database tables initialized successfully!")
    logger.info(f"📋 Available tables: {list(Base.metadata.tables.keys())}")
    logger.info(f"🚀 {settings.app_name} is ready!")
    yield
    engine.dispose()
    logger.info("🛑 Shutdown complete")


# ===================== CONFIG APP =====================
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=settings.app_description,
    lifespan=lifespan
)


# ===================== ERROR HANDLERS =====================
@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    error = FieldValidationError.from_error_list(exc.errors())
    return JSONResponse(
        status_code=422,
        content={"detail": error_detail(error.message, error.errors, jsonable_encoder(exc.body))}
    )


# ===================== MIDDLEWARE =====================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ===================== ROUTERS =====================
app.include_router(server_controller.router)

# ===================== RUN =====================
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=settings.server_host, port=settings.server_port, reload=settings.server_reload)
