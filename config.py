"""
Runtime configuration for the storefront API.

Everything is read from the environment (a local .env file is honored). A missing
DATABASE_URL / DATABASE_NAME pair leaves the service in "setup required" mode.
"""
import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Security
JWT_SECRET = os.getenv("JWT_SECRET", "devsecret_change_me")
JWT_EXP_MIN = int(os.getenv("JWT_EXP_MIN", "720"))
SUPER_ADMIN_EMAIL = os.getenv("SUPER_ADMIN_EMAIL")
SUPER_ADMIN_PASSWORD = os.getenv("SUPER_ADMIN_PASSWORD")

# HTTP
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:5173").rstrip("/")

# WhatsApp gateway
WHATSAPP_GATEWAY_URL = os.getenv("WHATSAPP_GATEWAY_URL", "https://wa.nivle.net").rstrip("/")
WHATSAPP_TIMEOUT = float(os.getenv("WHATSAPP_TIMEOUT", "10"))

# Asset host
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
