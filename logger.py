import logging
import os
import sys
import tempfile

LOG_FILE = os.environ.get("ENROLL_WIZARD_LOG_FILE", "/var/log/enrollment_wizard.log")

def setup_logger() -> logging.Logger:
    logger = logging.getLogger("enrollment_wizard")
    logger.setLevel(logging.DEBUG)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    # The admin console usually runs unprivileged; fall back to the temp dir
    try:
        fh = logging.FileHandler(LOG_FILE)
    except OSError:
        fh = logging.FileHandler(os.path.join(tempfile.gettempdir(), "enrollment_wizard.log"))
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(fmt)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(logging.WARNING)
    sh.setFormatter(fmt)

    if not logger.handlers:
        logger.addHandler(fh)
        logger.addHandler(sh)
    return logger

log = setup_logger()
