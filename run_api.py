#!/usr/bin/env python3
"""
Run the Incident Triage API.
Set STORE_URL (and STORE_API_KEY) in the environment or .env to use the REST store;
otherwise an in-memory store with demo incidents is used.
"""
import os

from dotenv import load_dotenv

load_dotenv()

import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.environ.get("RELOAD", "0") == "1",
    )
