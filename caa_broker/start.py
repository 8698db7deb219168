#!/usr/bin/env python3
"""
Startup script for the broker application.
"""
import os

import uvicorn


def main():
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8081"))
    reload = os.getenv("RELOAD", "false").lower() == "true"

    uvicorn.run("caa_broker.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
