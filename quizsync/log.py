import logging
from pathlib import Path

logger = logging.getLogger("quizsync")


def configure_logging(role: str, log_dir: Path | str = "logs", level: int = logging.INFO) -> logging.Logger:
    """Send quizsync logs for one process to ``<log_dir>/<role>.log``.

    ``force=True`` makes sure we override any handler uvicorn or textual
    installed before us.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(log_dir / f"{role}.log"),
        level=level,
        format=f"%(asctime)s %(levelname)s [{role.upper()}] %(message)s",
        filemode="w",
        force=True,
    )
    logger.setLevel(logging.DEBUG)
    logger.debug(f"[log] logging configured for role={role}")
    return logger
