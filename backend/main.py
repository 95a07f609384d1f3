"""
Safewatch Safety Backend — FastAPI + sqlite document store
Modular entry point. All logic is split across:
  config.py, geohash.py, store.py, spatial_index.py, reports.py,
  credibility.py, patterns.py, classifier.py, ratings.py, suggestions.py,
  authority.py, scheduler.py, engine.py, routes.py
"""

import logging

logging.basicConfig(level=logging.INFO)

# Import the FastAPI app from routes (the engine itself builds lazily)
from routes import app  # noqa: F401

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
