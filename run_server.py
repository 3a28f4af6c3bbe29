#!/usr/bin/env python3
"""Run the web server."""
import uvicorn

if __name__ == "__main__":
    uvicorn.run("taskgraph.server:app", host="127.0.0.1", port=8000, reload=True)
