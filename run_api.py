"""
FastAPI launcher script.

Run with: python run_api.py
"""

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("chainflow.api.main:app", host="0.0.0.0", port=8000, reload=True)
