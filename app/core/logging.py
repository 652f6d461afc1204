import logging
import sys


class ContextFormatter(logging.Formatter):
    """Custom formatter that handles optional work_dir and stage fields."""
    def format(self, record):
        if not hasattr(record, 'work_dir'):
            record.work_dir = '-'
        if not hasattr(record, 'stage'):
            record.stage = '-'
        return super().format(record)


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ContextFormatter(
        "%(asctime)s %(levelname)s %(name)s [work_dir=%(work_dir)s stage=%(stage)s] - %(message)s"
    ))
    logging.basicConfig(
        level=level,
        handlers=[handler],
    )
