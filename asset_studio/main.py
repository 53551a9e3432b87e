import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

# Load environment variables from .env file
print("\n" + "="*60)
print("🔧 LOADING ENVIRONMENT CONFIGURATION")
print("="*60)

env_path = Path(__file__).parent.parent / ".env"
print(f"Looking for .env file at: {env_path}")

if env_path.exists():
    print(f"✓ .env file found")
    load_dotenv(dotenv_path=env_path, override=True)
    print(f"✓ .env file loaded successfully")
else:
    print(f"⚠ .env file not found at: {env_path}")
    print(f"  Create it with CLOUDFLARE_ACCOUNT_ID / CLOUDFLARE_API_TOKEN for AI expansion")

for key in ("CLOUDFLARE_API_TOKEN", "FAL_KEY", "REMOVEBG_API_KEY"):
    value = os.environ.get(key)
    if value:
        print(f"✓ {key} loaded: {value[:6]}...")
    else:
        print(f"⚠ {key} not set")

print("="*60 + "\n")

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from asset_studio.api.v1.routes import router as api_v1_router  # noqa: E402


def create_app() -> FastAPI:
    """
    Application factory for the Asset Studio API.

    Keeping this as a separate function lets tests build a fresh app.
    """
    app = FastAPI(
        title="Asset Studio API",
        version="0.1.0",
        description="Image reframing, wallpaper composition and export.",
    )

    # Infrastructure-level health check (non-versioned) primarily for ops.
    @app.get("/health", tags=["health"])
    async def root_health_check() -> dict:
        """Simple root health check endpoint."""
        return {"status": "ok"}

    app.include_router(api_v1_router)

    return app


app = create_app()
