from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from authgate.core.config import settings
from authgate.core.deps import delivery_gateway
from authgate.core.errors import install_error_handlers
from authgate.core.http_hardening import install_http_hardening
from authgate.api.router import router as api_router


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    # Scheduled code deliveries finish before the process exits.
    await delivery_gateway.drain()


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_http_hardening(app)
install_error_handlers(app)

app.include_router(api_router, prefix="/api")

@app.get("/health")
def health():
    return {"status": "ok"}
