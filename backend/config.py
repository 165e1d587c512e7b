import os

from dotenv import find_dotenv, load_dotenv

load_dotenv(find_dotenv())

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# visitors.json, keys.json and photos/ live here
DATA_DIR = os.getenv("FRONTDESK_DATA_DIR", os.path.join(BASE_DIR, "data"))

# Logs: combined.log + error.log
LOG_DIR = os.getenv("FRONTDESK_LOG_DIR", os.path.join(BASE_DIR, "logs"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Photo handling
PHOTO_MAX_WIDTH = int(os.getenv("PHOTO_MAX_WIDTH", 1280))  # 0 = keep original size
JPEG_QUALITY = int(os.getenv("JPEG_QUALITY", 90))
MAX_PHOTO_BYTES = int(os.getenv("MAX_PHOTO_BYTES", 10 * 1024 * 1024))

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))
SSL_KEYFILE = os.getenv("SSL_KEYFILE")
SSL_CERTFILE = os.getenv("SSL_CERTFILE")
