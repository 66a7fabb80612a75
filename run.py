#!/usr/bin/env python3
"""
HSA Ledger Entry Point

Starts the FastAPI server. Host, port, storage backend and logging are read
from HSA_LEDGER_* environment variables (see hsa_ledger/config.py).
"""

import sys

from hsa_ledger.api import run_server
from hsa_ledger.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("🏥 Starting HSA Ledger...")
    print(f"💾 Storage backend: {config.storage_backend}")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server()
    except KeyboardInterrupt:
        print("\n👋 Shutting down HSA Ledger...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
