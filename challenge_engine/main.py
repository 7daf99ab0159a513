import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .config import LOG_LEVEL
from .database import create_db_and_tables
from .routers import challenges

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Money Challenges")

origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
async def root():
    return {"status": "ok"}

app.include_router(challenges.router)

@app.on_event("startup")
def on_startup():
    create_db_and_tables()
