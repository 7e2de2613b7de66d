import logging
import os

from fastapi import FastAPI
import uvicorn

from database import init_db
from route_modules import combined_router

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger("gym_app")

app = FastAPI(title="Gym Consistency API")
app.include_router(combined_router)


@app.on_event("startup")
async def startup():
    init_db()
    logger.info("Database initialized")


@app.middleware("http")
async def add_no_cache_header(request, call_next):
    response = await call_next(request)
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate, max-age=0, private"
    return response


@app.get("/api/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 9007))
    uvicorn.run(app, host="0.0.0.0", port=port)
