from __future__ import annotations

import logging
from typing import Optional

from core.settings import PropertySettings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(props: Optional[PropertySettings] = None) -> None:
    level_name = "INFO"
    if props is not None:
        level_name = props.get("log.level", "INFO")
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)

    # botocore is chatty at DEBUG; keep it at WARNING unless asked for
    if level > logging.DEBUG:
        logging.getLogger("botocore").setLevel(logging.WARNING)
        logging.getLogger("urllib3").setLevel(logging.WARNING)
