from prometheus_fastapi_instrumentator import Instrumentator

from medequip import app
from medequip.core.config import settings
from medequip.core.logging import setup_logging

setup_logging()
Instrumentator().instrument(app).expose(app, include_in_schema=False)


@app.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("medequip.main:app", host=settings.HOST, port=settings.PORT, log_config=None)
