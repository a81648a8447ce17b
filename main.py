"""
CRO Analysis Client - Main Application

Dashboard-side controller for landing page analyses: submits a URL to the
analysis backend, shows simulated progress while the backend scrapes,
screenshots and runs the vision model, supervises the request with cancel
and timeout, and turns the answer into a loading / error / success view.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from config import get_log_level
from routes import router

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

# Initialize FastAPI app
app = FastAPI(title="CRO Analysis Client")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include all routes from routes.py
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    # Single worker: the analysis controller holds the session's run state in memory
    uvicorn.run(app, host="0.0.0.0", port=8000, timeout_keep_alive=60, workers=1)
