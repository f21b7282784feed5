"""
FastAPI application entry point.

Run with: uvicorn chainflow.api.main:app --reload --host 0.0.0.0 --port 8000
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chainflow import __version__
from chainflow.api.routes import conversation, history
from chainflow.api.dependencies import initialize_services


# Create FastAPI app
app = FastAPI(
    title="Chainflow Conversation API",
    description="REST API driving conversational transfer, trade and minting flows",
    version=__version__
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    initialize_services()


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Chainflow Conversation API",
        "version": __version__,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(conversation.router)
app.include_router(history.router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
