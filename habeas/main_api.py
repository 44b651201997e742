import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from db.session import init_db
from habeas.api.routers import publications, system, webhooks
from habeas.config import settings

logging.basicConfig(level=settings.LOG_LEVEL)

app = FastAPI(
    title="Habeas API",
    description="API de publicações e monitoramentos processuais via Judit.",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup():
    init_db()


@app.get("/", tags=["Health Check"])
async def read_root():
    return {"status": "Habeas API está no ar!"}


app.include_router(publications.router)
app.include_router(webhooks.router)
app.include_router(system.router)
