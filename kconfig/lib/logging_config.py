"""JSON logging configuration for kconfig commands."""

import logging

from pythonjsonlogger import jsonlogger

LOGGER_NAME = "kconfig"

# Issuance context passed through ``extra=`` is kept alongside the base fields
ALLOWED_FIELDS = frozenset(
    {
        "timestamp",
        "level",
        "message",
        "exc_info",
        "funcName",
        "lineno",
        "csr",
        "stage",
    }
)


class IssuanceJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with a fixed field set plus the CSR name and stage when present."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")

        for key in [key for key in log_record if key not in ALLOWED_FIELDS]:
            log_record.pop(key)


def _setup_logger() -> logging.Logger:
    """Configure the package logger once and return it.

    Library modules log under ``kconfig.*`` so they share this handler. Output
    goes to stderr, leaving stdout free for the generated kubeconfig.
    """
    logger = logging.getLogger(LOGGER_NAME)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(
        IssuanceJsonFormatter(
            fmt="%(timestamp)s %(levelname)s %(funcName)s %(lineno)d %(message)s",
            timestamp=True,
        )
    )

    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def set_verbose(verbose: bool) -> None:
    """Switch the package logger between INFO and DEBUG."""
    LOGGER.setLevel(logging.DEBUG if verbose else logging.INFO)


LOGGER = _setup_logger()
