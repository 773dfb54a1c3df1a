from pathlib import Path

# Configuration
CONFIG_DIRNAME = ".finwf"
CONFIG_FILENAME = "config.yml"

# Signature collection
DEFAULT_SIGNATURE_INSTRUCTIONS = "Please sign the vehicle intake protocol"
DEFAULT_SIGNATURE_TIMEOUT_MINUTES = 15
MIN_SIGNATURE_TIMEOUT_MINUTES = 5
MAX_SIGNATURE_TIMEOUT_MINUTES = 30
DEFAULT_STATUS_POLL_INTERVAL = 3.0  # seconds
USER_CANCEL_REASON = "Cancelled by user"

# Rendering
DEFAULT_DOCUMENTS_DIR = Path("documents")
RENDITION_SUFFIX = ".pdf"

# HTTP
DEFAULT_REQUEST_TIMEOUT = 10.0  # seconds
