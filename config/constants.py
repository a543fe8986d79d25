"""Application-wide constants and configuration values.

This module centralizes all magic numbers and configuration constants
to improve maintainability and follow clean code principles.
"""
import os

# ============================================================================
# SERVER CONFIGURATION
# ============================================================================
DEFAULT_SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
# Cloud Run injects PORT env var; use it if available, otherwise default to 8000
SERVER_PORT = int(os.getenv("PORT", "8000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ============================================================================
# UPLOADS / IMAGES
# ============================================================================
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
BATCH_MAX_IMAGES = int(os.getenv("BATCH_MAX_IMAGES", "20"))
MAX_IMAGE_WIDTH = int(os.getenv("MAX_IMAGE_WIDTH", "1280"))
MAX_IMAGE_HEIGHT = int(os.getenv("MAX_IMAGE_HEIGHT", "720"))
MIN_IMAGE_DIMENSION = 1
IMAGE_ENCODING_FORMAT = ".jpg"
JPEG_QUALITY = int(os.getenv("JPEG_QUALITY", "90"))

IMAGE_STORE_DIR = os.getenv("IMAGE_STORE_DIR", "./data/images")
# Detectors fetch images by URL, so this must be reachable from the internet
IMAGE_PUBLIC_BASE_URL = os.getenv("IMAGE_PUBLIC_BASE_URL", "http://localhost:8000/images")

DEFAULT_SCAN_SOURCE = "flir_one_pro"
DEFAULT_SCAN_TYPE = "other"

# ============================================================================
# ROBOFLOW API
# ============================================================================
ROBOFLOW_API_URL = os.getenv("ROBOFLOW_API_URL", "https://detect.roboflow.com")
ROBOFLOW_API_KEY = os.getenv("ROBOFLOW_API_KEY", "")
ROBOFLOW_HTTP_TIMEOUT_SEC = float(os.getenv("ROBOFLOW_HTTP_TIMEOUT_SEC", "10.0"))

# Disease model A: cattle-diseases
ROBOFLOW_PROJECT = os.getenv("ROBOFLOW_PROJECT", "cattle-diseases")
ROBOFLOW_VERSION = os.getenv("ROBOFLOW_VERSION", "1")
# Disease model B: cow-diseases
ROBOFLOW_MODEL2_PROJECT = os.getenv("ROBOFLOW_MODEL2_PROJECT", "cow-diseases")
ROBOFLOW_MODEL2_VERSION = os.getenv("ROBOFLOW_MODEL2_VERSION", "1")
# Wound object detection
ROBOFLOW_WOUND_PROJECT = os.getenv("ROBOFLOW_WOUND_PROJECT", "wound-object-detection")
ROBOFLOW_WOUND_VERSION = os.getenv("ROBOFLOW_WOUND_VERSION", "1")

# ============================================================================
# AGGREGATION THRESHOLDS
# ============================================================================
DISEASE_MIN_CONFIDENCE = float(os.getenv("DISEASE_MIN_CONFIDENCE", "0.2"))
DISEASE_SUSPICIOUS_CONFIDENCE = float(os.getenv("DISEASE_SUSPICIOUS_CONFIDENCE", "0.4"))
DISEASE_CRITICAL_CONFIDENCE = float(os.getenv("DISEASE_CRITICAL_CONFIDENCE", "0.7"))
WOUND_MIN_CONFIDENCE = float(os.getenv("WOUND_MIN_CONFIDENCE", "0.4"))
WOUND_CRITICAL_CONFIDENCE = float(os.getenv("WOUND_CRITICAL_CONFIDENCE", "0.6"))
HEALTHY_LABELS = ("healthy", "normal", "sano", "Unlabeled")

# Consolidation across scans of one animal
CONSOLIDATED_CRITICAL_CONFIDENCE = float(os.getenv("CONSOLIDATED_CRITICAL_CONFIDENCE", "0.9"))
CONSOLIDATED_SUSPICIOUS_CONFIDENCE = float(os.getenv("CONSOLIDATED_SUSPICIOUS_CONFIDENCE", "0.7"))

# ============================================================================
# MESSAGING (TWILIO WHATSAPP)
# ============================================================================
TWILIO_API_URL = os.getenv("TWILIO_API_URL", "https://api.twilio.com/2010-04-01")
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_WHATSAPP_FROM = os.getenv("TWILIO_WHATSAPP_FROM", "")
MAX_IMAGES_WHATSAPP = int(os.getenv("MAX_IMAGES_WHATSAPP", "10"))

# ============================================================================
# HTTP
# ============================================================================
HTTP_REQUEST_TIMEOUT_SEC = float(os.getenv("HTTP_REQUEST_TIMEOUT_SEC", "10.0"))
MEDIA_DOWNLOAD_TIMEOUT_SEC = float(os.getenv("MEDIA_DOWNLOAD_TIMEOUT_SEC", "30.0"))
USER_ID_HEADER = "X-User-Id"
# JSON list of {id, name, email, phone}; accounts are managed outside this service
USERS_FILE = os.getenv("USERS_FILE", "")
