"""Check the Daraja credentials by requesting an OAuth token.
Run: python -m scripts.check_mpesa_connection
"""
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from config import Settings
from exceptions import ConfigurationError, CredentialError
from services.daraja import DarajaClient
from services.token_manager import TokenManager


async def check_mpesa_connection() -> bool:
    settings = Settings()
    missing = settings.missing_mpesa_settings()
    if missing:
        print(f"❌ Missing settings: {', '.join(missing)}")
    else:
        print("✓ All M-Pesa settings present")

    print(f"\nRequesting a token from {settings.mpesa_base_url} ...")
    tokens = TokenManager(DarajaClient(settings).fetch_token)
    try:
        credential = await tokens.get_token()
    except (ConfigurationError, CredentialError) as e:
        print(f"❌ {type(e).__name__}: {e.message}")
        return False

    print(f"✅ Token obtained: {credential.value[:8]}...")
    return not missing


if __name__ == "__main__":
    print("=" * 60)
    print("Testing M-Pesa Daraja Connection")
    print("=" * 60)
    success = asyncio.run(check_mpesa_connection())
    print("=" * 60)
    if success:
        print("✅ M-Pesa is properly configured.")
    else:
        print("❌ Connection check failed. Please check your Daraja app settings.")
    print("=" * 60)
    sys.exit(0 if success else 1)
