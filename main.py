"""
Application Entry Point
Run with: python main.py or uvicorn inspection_engine.api.main:create_app --factory --reload
"""

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "inspection_engine.api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=True,  # Auto-reload on code changes (dev only)
        log_level="info",
    )
