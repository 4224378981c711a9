"""
Entry point for the application
"""
import uvicorn
from dmflow.core.config import settings
from dmflow.api.main import app


if __name__ == "__main__":
    uvicorn.run(
        "dmflow.api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
