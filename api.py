from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import uvicorn
from datetime import date
from typing import Dict, Optional
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

from backend import get_eth_price, get_streak_data, get_wallet_analytics
from cache import CacheConfig, LayeredCache
from config import load_settings
from errors import InvalidIdentity
from prices import PriceCache

settings = load_settings()
logging.getLogger().setLevel(settings.log_level)

# Shared across requests: prices for 60s, OP names for an hour
price_cache = PriceCache(ttl=settings.price_cache_ttl)
name_cache = LayeredCache(CacheConfig(
    redis_url=settings.redis_url,
    redis_ttl=settings.name_cache_ttl,
    memory_ttl=settings.name_cache_ttl
))


class WalletQuery(BaseModel):
    addressOrName: str = Field(..., min_length=1)
    chain: str = 'base'

class StreakResponse(BaseModel):
    success: bool
    address: str
    dailyActivity: Dict[str, int]
    currentStreak: int
    longestStreak: int
    totalActiveDays: int

class EthPriceResponse(BaseModel):
    ethPrice: float

app = FastAPI(title="Gas Trackrr", version="0.2")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # Next.js dev server
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/")
async def read_root():
    return {"status": "online", "service": "Wallet Analytics API"}

@app.post("/api/wallet")
async def wallet_analytics(query: WalletQuery):
    return await get_wallet_analytics(
        query.addressOrName,
        query.chain,
        settings=settings,
        price_cache=price_cache,
        name_cache=name_cache
    )

@app.get("/analyze/{address_or_name}")
async def analyze_wallet(address_or_name: str, chain: str = 'base'):
    return await get_wallet_analytics(
        address_or_name,
        chain,
        settings=settings,
        price_cache=price_cache,
        name_cache=name_cache
    )

@app.get("/api/streak", response_model=StreakResponse)
async def streak(
    address: Optional[str] = None,
    chain: str = 'base',
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None)
):
    if not address:
        raise HTTPException(status_code=400, detail="Missing required parameter: address")
    try:
        return await get_streak_data(
            address,
            chain,
            start=start,
            end=end,
            settings=settings,
            name_cache=name_cache
        )
    except (InvalidIdentity, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Streak lookup failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Streak lookup failed: {str(e)}")

@app.get("/api/eth-price", response_model=EthPriceResponse)
async def eth_price():
    try:
        return {"ethPrice": await get_eth_price(settings=settings, price_cache=price_cache)}
    except Exception as e:
        logger.error(f"ETH price lookup failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

if __name__ == "__main__":
    uvicorn.run("api:app", host="0.0.0.0", port=8000, reload=True)
