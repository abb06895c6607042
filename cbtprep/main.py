import logging
import os
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler

from fastapi import FastAPI

from cbtprep import config
from cbtprep.database import Base, engine
from cbtprep import models  # noqa: F401  registers tables on Base.metadata
from cbtprep.routers import (
    auth as auth_router,
    cbt as cbt_router,
    payments as payments_router,
    stats as stats_router,
)
from cbtprep.utils.explanations import close_explainer
from cbtprep.utils.paystack import close_payment_gateway
from cbtprep.utils.question_source import close_question_source


def setup_logging():
    logger = logging.getLogger("cbtprep")
    logger.setLevel(logging.INFO)
    if logger.handlers:
        return

    os.makedirs(config.LOG_DIR, exist_ok=True)
    log_path = os.path.join(config.LOG_DIR, config.LOG_FILE)
    file_handler = RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    logger.addHandler(file_handler)
    # uvicorn and sqlalchemy log through the root logger
    logging.basicConfig(level=logging.INFO)


# --- Lifecycle ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # shared outbound HTTP clients
    close_question_source()
    close_payment_gateway()
    close_explainer()


setup_logging()

app = FastAPI(title="CBT Prep API", lifespan=lifespan)
Base.metadata.create_all(bind=engine)

app.include_router(auth_router.router)
app.include_router(cbt_router.router)
app.include_router(payments_router.router)
app.include_router(stats_router.router)


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("cbtprep.main:app", host="127.0.0.1", port=8000, reload=True)
