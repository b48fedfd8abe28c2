import uvicorn  # type: ignore

from gatekeeper.core import config
from gatekeeper.utils import get_logger

log = get_logger(__name__)

if __name__ == "__main__":
    log.info(f"Running gatekeeper on {config.HOST}:{config.PORT}")
    uvicorn.run("gatekeeper.main:app", reload=True, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())
