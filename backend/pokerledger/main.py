import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pokerledger.api import session, settlement
from pokerledger.config import ALLOWED_ORIGINS, LOG_LEVEL, check_auth_settings

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# FastAPI app設定など
app = FastAPI(title="Poker Ledger")

# CORS
app.add_middleware(
      CORSMiddleware,
      allow_origins=[o.strip() for o in ALLOWED_ORIGINS.split(",")],
      allow_credentials=True,
      allow_methods=["*"],
      allow_headers=["*"],
)

app.include_router(session.router, prefix="/api", tags=["session"])
app.include_router(settlement.router, prefix="/api", tags=["settlement"])


@app.on_event("startup")
async def startup():
    # 認証設定はAPI起動時にだけ確認する
    check_auth_settings()
